"""
模块职责：统一日志配置与结构化输出。
- configure_logging(): 根据环境变量设置日志等级与输出（控制台 + 可选滚动文件），合流 uvicorn。
- emit / emit_warning / emit_error: 输出结构化日志（dict -> 一行 JSON），方便检索。

网关的所有模块只通过本模块打点，事件名即检索关键字，例如：
  emit("recs_query", table="jobDefinition", filters=["csStatus"])
  emit_warning("rows_truncated", table="jobDefinition", max_rows=5000)
"""
import logging, json, os, pathlib
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime


LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() == "true"
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_FILE = os.getenv("LOG_FILE", "gridfactory_db.log")
LOG_ROTATE_WHEN = os.getenv("LOG_ROTATE_WHEN", "midnight")
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "7"))
UVICORN_ACCESS_LOG = os.getenv("LOG_UVICORN_ACCESS", "false").lower() == "true"

LOGGER_NAME = "gridfactory_db"

_configured = False

def configure_logging():
    global _configured
    if _configured:
        return

    level = getattr(logging, LEVEL, logging.INFO)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    ))
    root.addHandler(console)

    if LOG_TO_FILE:
        pathlib.Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
        fileh = TimedRotatingFileHandler(
            os.path.join(LOG_DIR, LOG_FILE),
            when=LOG_ROTATE_WHEN, backupCount=LOG_BACKUP_COUNT, encoding="utf-8",
        )
        fileh.setLevel(level)
        # 文件里只写 message（纯 JSON），便于 grep / jq
        fileh.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(fileh)

    root.setLevel(level)

    # 合流 uvicorn 日志；访问行与 gw_request_end 重复，默认压到 WARNING
    for ln in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(ln)
        lg.handlers = []
        lg.propagate = True
    if not UVICORN_ACCESS_LOG:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    _configured = True

_gw_logger = logging.getLogger(LOGGER_NAME)

def _now_iso():
    # 本地时区 + 毫秒，示例：2026-10-18T17:30:42.123+02:00
    return datetime.now().astimezone().isoformat(timespec="milliseconds")

def _record(event: str, level: str, kwargs: dict) -> str:
    rec = {"ts": _now_iso(), "level": level, "event": event, **kwargs}
    try:
        return json.dumps(rec, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(rec)

def emit(event: str, level: str = "INFO", **kwargs):
    """
    结构化日志：默认 INFO；每条都带时间戳 ts（本地时区）。
    用法：emit("request_start", request_id=..., method="GET", path="/db/jobs/")
    """
    msg = _record(event, level, kwargs)
    if level == "DEBUG":
        _gw_logger.debug(msg)
    else:
        _gw_logger.info(msg)


def emit_warning(event: str, **kwargs):
    """
    告警日志（level=WARNING）：不影响请求结果，但需要运维关注，
    例如行数上限截断 rows_truncated。
    """
    _gw_logger.warning(_record(event, "WARNING", kwargs))


def emit_error(event: str, **kwargs):
    """
    错误日志（level=ERROR），同样带 ts。
    用法：emit_error("query_error", table=..., err=str(e))
    """
    _gw_logger.error(_record(event, "ERROR", kwargs))
