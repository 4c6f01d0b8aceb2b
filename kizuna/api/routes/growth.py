"""
情感成長エンドポイント
"""

from fastapi import APIRouter, Depends

from ...core.exceptions import KizunaException
from ...domain.services.chat import ChatPipeline
from ..auth import get_current_user_id, verify_api_key
from ..dependencies import get_chat_pipeline
from ..errors import to_http_exception
from ..schemas import CreateMemoryRequest, GrowthResponse, MemoryResponse

router = APIRouter(
    prefix="/v1/emotional-growth",
    tags=["emotional-growth"],
    dependencies=[Depends(verify_api_key)],
)


@router.get("/{companion_id}", response_model=GrowthResponse)
async def get_growth(
    companion_id: str,
    user_id: str = Depends(get_current_user_id),
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> GrowthResponse:
    """関係性進捗・マイルストーン一覧・回想を取得"""
    try:
        snapshot = await pipeline.get_growth(user_id, companion_id)
    except KizunaException as e:
        raise to_http_exception(e) from e

    return GrowthResponse(**snapshot.to_dict())


@router.post("/{companion_id}/memories", response_model=MemoryResponse)
async def create_memory(
    companion_id: str,
    request: CreateMemoryRequest,
    user_id: str = Depends(get_current_user_id),
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> MemoryResponse:
    """会話の思い出を残す"""
    try:
        memory = await pipeline.create_conversation_memory(
            user_id, companion_id, request.title, request.content, request.emotional_value
        )
    except KizunaException as e:
        raise to_http_exception(e) from e

    return MemoryResponse.from_domain(memory)
