"""
API Routes
エンドポイント定義
"""

from .chat import router as chat_router
from .growth import router as growth_router
from .quota import router as quota_router

__all__ = [
    "chat_router",
    "growth_router",
    "quota_router",
]
