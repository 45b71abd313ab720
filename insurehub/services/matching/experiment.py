import zlib

from insurehub.settings import settings

CONTROL = "control"
FEEDBACK_ENHANCED = "feedback_enhanced"
WEIGHTED_MEDICAL = "weighted_medical"

VARIANTS = (CONTROL, FEEDBACK_ENHANCED, WEIGHTED_MEDICAL)


def assign_variant(user_id: int | None, salt: str | None = None) -> str:
    """
    Consistent A/B bucket for a user: the same user always lands in the same variant.
    Guests are always in control.
    """
    if user_id is None:
        return CONTROL

    salt = salt if salt is not None else settings.recommendation_experiment_salt
    bucket = zlib.crc32(f"{user_id}{salt}".encode("utf-8")) % 100
    if bucket < 33:
        return CONTROL
    if bucket < 66:
        return FEEDBACK_ENHANCED
    return WEIGHTED_MEDICAL
