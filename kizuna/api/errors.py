"""
ドメイン例外 → HTTP エラー変換
"""

from fastapi import HTTPException

from ..core.exceptions import (
    CompanionNotFoundError,
    KizunaException,
    ModerationRejectedError,
    PersistenceError,
    QuotaExceededError,
    ValidationError,
)

# (例外クラス, ステータス, error)
_ERROR_MAP: tuple[tuple[type[KizunaException], int, str], ...] = (
    (ValidationError, 400, "bad_request"),
    (ModerationRejectedError, 400, "content_violation"),
    (QuotaExceededError, 429, "quota_exceeded"),
    (CompanionNotFoundError, 404, "not_found"),
    (PersistenceError, 503, "service_unavailable"),
)

UPGRADE_HINT = "升级到高级会员，享受无限畅聊"


def to_http_exception(error: KizunaException) -> HTTPException:
    """ドメイン例外を HTTPException に変換"""
    for exc_type, status_code, label in _ERROR_MAP:
        if isinstance(error, exc_type):
            break
    else:
        status_code, label = 500, "internal_error"

    detail = {
        "error": label,
        "code": error.error_code,
        "message": error.message,
    }
    if isinstance(error, QuotaExceededError):
        detail["upgrade_hint"] = UPGRADE_HINT
        if "daily_limit" in error.details:
            detail["daily_limit"] = error.details["daily_limit"]
    if isinstance(error, ModerationRejectedError) and "category" in error.details:
        detail["category"] = error.details["category"]
    if isinstance(error, ValidationError) and "field" in error.details:
        detail["field"] = error.details["field"]

    return HTTPException(status_code=status_code, detail=detail)
