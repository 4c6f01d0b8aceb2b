"""
カスタム例外クラス
階層的な例外処理によるエラーハンドリングの統一
"""

from typing import Any


class KizunaException(Exception):
    """Kizunaアプリケーションのベース例外クラス"""

    def __init__(self, message: str, error_code: str | None = None,
                 details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(KizunaException):
    """設定関連のエラー"""


class ValidationError(KizunaException):
    """バリデーションエラー（空・長すぎるメッセージ等）"""

    def __init__(self, message: str, field: str | None = None,
                 value: Any | None = None, **kwargs):
        kwargs.setdefault("error_code", "VALIDATION_ERROR")
        super().__init__(message, **kwargs)
        if field:
            self.details['field'] = field
        if value is not None:
            self.details['value'] = value


class BusinessLogicError(KizunaException):
    """ビジネスロジック関連のエラー"""


class QuotaExceededError(BusinessLogicError):
    """本日のメッセージ配額を使い切った"""

    def __init__(self, message: str, user_id: str | None = None,
                 daily_limit: int | None = None, **kwargs):
        kwargs.setdefault("error_code", "QUOTA_EXCEEDED")
        super().__init__(message, **kwargs)
        if user_id:
            self.details['user_id'] = user_id
        if daily_limit is not None:
            self.details['daily_limit'] = daily_limit


class ModerationRejectedError(BusinessLogicError):
    """コンテンツ審査で拒否された"""

    def __init__(self, message: str, category: str | None = None, **kwargs):
        kwargs.setdefault("error_code", "CONTENT_VIOLATION")
        super().__init__(message, **kwargs)
        if category:
            self.details['category'] = category


class CompanionNotFoundError(BusinessLogicError):
    """コンパニオンが存在しない、または所有者ではない"""

    def __init__(self, message: str, companion_id: str | None = None, **kwargs):
        kwargs.setdefault("error_code", "COMPANION_NOT_FOUND")
        super().__init__(message, **kwargs)
        if companion_id:
            self.details['companion_id'] = companion_id


class PersistenceError(KizunaException):
    """永続化層のエラー"""

    def __init__(self, message: str, operation: str | None = None, **kwargs):
        kwargs.setdefault("error_code", "PERSISTENCE_FAILURE")
        super().__init__(message, **kwargs)
        if operation:
            self.details['operation'] = operation


class ExternalServiceError(KizunaException):
    """外部サービス（生成バックエンドなど）関連のエラー"""

    def __init__(self, message: str, service_name: str = "unknown",
                 status_code: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.details['service_name'] = service_name
        if status_code:
            self.details['status_code'] = status_code


class GenerationError(ExternalServiceError):
    """返信生成の失敗（ReplyAcquirerの外には出ない）"""
