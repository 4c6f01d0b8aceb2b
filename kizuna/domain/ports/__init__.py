"""
Domain Ports
依存性逆転のためのインターフェース定義
"""

from .ai_port import ChatTurn, IAIProvider
from .plan_port import IPlanProvider
from .storage_port import IStorage

__all__ = [
    "ChatTurn",
    "IAIProvider",
    "IPlanProvider",
    "IStorage",
]
