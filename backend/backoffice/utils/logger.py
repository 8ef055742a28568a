"""
ロギングユーティリティ

APIアクセスログ・エラーログ・統合監査ログの3系統をJSON形式でファイルに出力する。
出力先は環境変数 LOG_DIR、DEBUG=true のときは標準エラーにも出力する。
"""

import json
import logging
import logging.handlers
import os
import time
import traceback
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator

from ..exceptions import MergeError

LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# extra で渡された項目の判定に使う LogRecord の標準属性
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """1レコード1行のJSONに整形（extra の項目もそのまま出力）"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        entry.update({k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS})
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logger(name: str, filename: str, level: int = logging.INFO) -> logging.Logger:
    """
    ファイル出力（ローテーション付き）のロガーを作成

    同じ名前で再度呼ばれた場合はハンドラーを作り直す。
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = StructuredFormatter()
    file_handler = logging.handlers.RotatingFileHandler(
        LOG_DIR / filename,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if os.getenv("DEBUG", "false").lower() == "true":
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


api_logger = setup_logger("backoffice.api", "api_requests.log")
error_logger = setup_logger("backoffice.errors", "errors.log", level=logging.ERROR)
# 統合・取り消しの監査ログ（誰が・いつ・どの組を）
merge_logger = setup_logger("backoffice.merge", "merges.log")


def log_api_request(request, status_code: int = None, process_time: float = None, error: Exception = None):
    """APIリクエストの結果を記録（例外時はエラーログにも出力）"""
    data = {
        "method": request.method,
        "path": request.url.path,
        "query_params": dict(request.query_params),
        "process_time": process_time,
    }
    if error is None:
        api_logger.info("API Response", extra={**data, "status_code": status_code})
        return

    api_logger.error("API Request failed", extra={**data, "error": str(error)})
    error_logger.error(f"Request failed: {error}", extra=data, exc_info=error)


@contextmanager
def audit_operation(operation: str, **context) -> Iterator[Dict[str, Any]]:
    """
    統合・取り消し操作の監査ログ

    開始と結果（completed / rejected / failed）を merge_logger に記録する。
    MergeError は業務上の拒否として警告、それ以外の例外は障害としてエラーログにも残す。
    例外はそのまま呼び出し元に送出する。

    Yields:
        結果に追加する項目を書き込む辞書
    """
    result: Dict[str, Any] = {}
    started = time.monotonic()
    merge_logger.info(f"{operation} started", extra={"operation": operation, "context": context})

    try:
        yield result
    except MergeError as e:
        merge_logger.warning(f"{operation} rejected: {e.reason}", extra={
            "operation": operation,
            "context": context,
            "status": "rejected",
            "reason": e.reason,
            "duration_seconds": time.monotonic() - started,
        })
        raise
    except Exception as e:
        merge_logger.error(f"{operation} failed", extra={
            "operation": operation,
            "context": context,
            "status": "failed",
            "duration_seconds": time.monotonic() - started,
        }, exc_info=True)
        error_logger.error(f"{operation} failed: {e}", extra={
            "operation": operation,
            "context": context,
        }, exc_info=True)
        raise
    else:
        merge_logger.info(f"{operation} completed", extra={
            "operation": operation,
            "context": context,
            "status": "completed",
            "result": result,
            "duration_seconds": time.monotonic() - started,
        })
