from fastapi import FastAPI

from insurehub.api.endpoints import payments, purchases, quotes, recommendations

app = FastAPI(title="insurehub")

app.include_router(quotes.router, prefix="/api/quotes", tags=["Quotes"])
app.include_router(recommendations.router, prefix="/api/recommendations", tags=["Recommendations"])
app.include_router(purchases.router, prefix="/api/purchases", tags=["Purchases"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])


@app.get("/health")
def health():
    return {"status": "ok"}
