"""
AI Adapters
返信生成バックエンドの実装
"""

from .openai import OpenAICompatibleAdapter

__all__ = ["OpenAICompatibleAdapter"]
