"""
配額エンドポイント
"""

from fastapi import APIRouter, Depends

from ...core.exceptions import KizunaException
from ...domain.services.chat import ChatPipeline
from ..auth import get_current_user_id, verify_api_key
from ..dependencies import get_chat_pipeline
from ..errors import to_http_exception
from ..schemas import QuotaResponse

router = APIRouter(
    prefix="/v1/quota",
    tags=["quota"],
    dependencies=[Depends(verify_api_key)],
)


@router.get("", response_model=QuotaResponse)
async def get_quota(
    user_id: str = Depends(get_current_user_id),
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> QuotaResponse:
    """本日の配額状況を取得"""
    try:
        status = await pipeline.quota_status(user_id)
    except KizunaException as e:
        raise to_http_exception(e) from e

    return QuotaResponse(
        quota_date=status.quota_date,
        daily_limit=status.daily_limit,
        used=status.used,
        remaining=status.remaining,
        unlimited=status.unlimited,
    )
