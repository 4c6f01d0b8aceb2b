"""
構造化ログ

1レコード1行のJSONで出力する。
event / user_id / companion_id / request_id / stage はトップレベルに置き、
ユーザー×コンパニオン単位でログを追えるようにする。それ以外の extra は "context" にまとめる。
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from .exceptions import KizunaException

ROOT_LOGGER = "kizuna"
HANDLER_NAME = "kizuna-json"

CORRELATION_FIELDS = ("event", "user_id", "companion_id", "request_id", "stage")

# LogRecord が元から持つ属性（extra 以外）
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "taskName",
}


class JsonLineFormatter(logging.Formatter):
    """相関フィールドをトップレベルに昇格させるJSONフォーマッター"""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        context: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or value is None:
                continue
            if key in CORRELATION_FIELDS:
                entry[key] = value
            else:
                context[key] = value
        if context:
            entry["context"] = context

        error = record.exc_info[1] if record.exc_info else None
        if error is not None:
            entry["error"] = {"type": type(error).__name__, "message": str(error)}
            if isinstance(error, KizunaException):
                entry["error"]["code"] = error.error_code
                if error.details:
                    entry["error"]["details"] = error.details

        return json.dumps(entry, ensure_ascii=False, separators=(",", ":"), default=str)


def _has_json_handler(logger: logging.Logger) -> bool:
    return any(h.get_name() == HANDLER_NAME for h in logger.handlers)


def configure_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> logging.Logger:
    """
    kizuna 配下のロガーを設定

    何度呼んでもハンドラは1つ。レベルは毎回反映する。
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not _has_json_handler(root):
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.set_name(HANDLER_NAME)
        handler.setFormatter(JsonLineFormatter())
        root.addHandler(handler)
    return root


def get_logger(name: str) -> logging.Logger:
    """kizuna 名前空間のロガーを取得（未設定なら INFO で設定）"""
    if not _has_json_handler(logging.getLogger(ROOT_LOGGER)):
        configure_logging()
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def log_event(
    logger: logging.Logger,
    event: str,
    user_id: Optional[str] = None,
    companion_id: Optional[str] = None,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """ドメインイベント（配額予約、レベルアップ、マイルストーン獲得など）"""
    logger.log(level, event, extra={
        "event": event,
        "user_id": user_id,
        "companion_id": companion_id,
        **context,
    })


def log_failure(
    logger: logging.Logger,
    error: BaseException,
    stage: str,
    user_id: Optional[str] = None,
    companion_id: Optional[str] = None,
    **context: Any,
) -> None:
    """処理段階ごとの失敗。例外の型とエラーコードも出力される"""
    logger.error(f"{stage} failed: {error}", exc_info=error, extra={
        "event": f"{stage}_failed",
        "stage": stage,
        "user_id": user_id,
        "companion_id": companion_id,
        **context,
    })


def log_http(
    logger: logging.Logger,
    method: str,
    path: str,
    request_id: str,
    user_id: Optional[str] = None,
    status_code: Optional[int] = None,
    duration_ms: Optional[float] = None,
) -> None:
    """HTTPの受信（status_code なし）と応答"""
    if status_code is None:
        event, msg = "http_request", f"{method} {path}"
    else:
        event, msg = "http_response", f"{method} {path} {status_code}"
    logger.info(msg, extra={
        "event": event,
        "request_id": request_id,
        "user_id": user_id,
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
    })
