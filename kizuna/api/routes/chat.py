"""
チャットエンドポイント
"""

from fastapi import APIRouter, Depends, Query

from ...core.exceptions import KizunaException
from ...domain.services.chat import ChatPipeline
from ..auth import get_current_user_id, verify_api_key
from ..dependencies import get_chat_pipeline
from ..errors import to_http_exception
from ..schemas import (
    DeleteHistoryResponse,
    EmotionalGrowthResponse,
    HistoryResponse,
    MessageResponse,
    SendMessageRequest,
    SendMessageResponse,
)

router = APIRouter(
    prefix="/v1/chat",
    tags=["chat"],
    dependencies=[Depends(verify_api_key)],
)


@router.post(
    "/{companion_id}", response_model=SendMessageResponse, response_model_exclude_unset=True
)
async def send_message(
    companion_id: str,
    request: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> SendMessageResponse:
    """
    メッセージ送信

    配額・審査を通過したメッセージに返信し、関係性の変化を返す。
    """
    try:
        result = await pipeline.send_message(
            user_id, companion_id, request.content, request.message_type
        )
    except KizunaException as e:
        raise to_http_exception(e) from e

    growth = None
    if result.emotional_growth is not None:
        growth = EmotionalGrowthResponse(**result.emotional_growth.to_dict())

    response = SendMessageResponse(
        message=MessageResponse.from_domain(result.message),
        companion_response=MessageResponse.from_domain(result.companion_response),
        intimacy_level=result.intimacy_level,
        emotional_growth=growth,
        degraded=result.degraded,
    )
    # 無制限プランでは残り配額をレスポンスに含めない
    if result.quota_remaining is not None:
        response.quota_remaining = result.quota_remaining
    return response


@router.get("/{companion_id}", response_model=HistoryResponse)
async def get_history(
    companion_id: str,
    limit: int = Query(50, description="取得件数（最新から）"),
    user_id: str = Depends(get_current_user_id),
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> HistoryResponse:
    """会話履歴を古い順で取得"""
    try:
        messages = await pipeline.get_history(user_id, companion_id, limit)
    except KizunaException as e:
        raise to_http_exception(e) from e

    return HistoryResponse(messages=[MessageResponse.from_domain(m) for m in messages])


@router.delete("/{companion_id}", response_model=DeleteHistoryResponse)
async def delete_history(
    companion_id: str,
    user_id: str = Depends(get_current_user_id),
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> DeleteHistoryResponse:
    """会話履歴を削除"""
    try:
        deleted = await pipeline.delete_history(user_id, companion_id)
    except KizunaException as e:
        raise to_http_exception(e) from e

    return DeleteHistoryResponse(success=True, deleted=deleted)
