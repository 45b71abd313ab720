from fastapi import HTTPException

from insurehub.errors import IneligibleRisk, InsureHubError, InvalidFactorConfiguration, InvalidTransition, NotFound

STATUS_BY_ERROR: dict[type[InsureHubError], int] = {
    IneligibleRisk: 422,
    InvalidFactorConfiguration: 422,
    NotFound: 404,
    InvalidTransition: 409,
}


def to_http_exception(exc: InsureHubError) -> HTTPException:
    for error_type, status_code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
