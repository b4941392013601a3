"""
应用入口：
- 加载 .env（先 .env.example 作默认，再用 .env 覆盖）
- lifespan 启动阶段：配置日志 → 打印 logger_config / gateway_config → 补建缺失的表
- 装载请求日志中间件、GatewayError 异常处理、记录路由（挂在 GF_BASE_PATH 下，默认 /db）
- 提供 /health
"""
from pathlib import Path
from dotenv import load_dotenv

# 1) 先加载 .env，务必在导入 logger / db 之前
ROOT = Path(__file__).resolve().parents[1]
ENV = ROOT / ".env"
ENV_EXAMPLE = ROOT / ".env.example"
if ENV_EXAMPLE.exists():
    load_dotenv(ENV_EXAMPLE, override=False)
if ENV.exists():
    load_dotenv(ENV, override=True)

# 2) 正常导入
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from gridfactory_db.middleware.logging import RequestLoggingMiddleware
from gridfactory_db.infra.logger import (
    configure_logging, emit, emit_error,
    LOG_TO_FILE, LOG_DIR, LOG_FILE, LOG_ROTATE_WHEN, LOG_BACKUP_COUNT,
)
from gridfactory_db.infra.db import init_db
from gridfactory_db.core.config import load_settings
from gridfactory_db.core.errors import GatewayError
from gridfactory_db.api import records as records_api

# 3) lifespan：startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    configure_logging()
    emit(
        "logger_config",
        to_file=LOG_TO_FILE, dir=LOG_DIR, file=LOG_FILE,
        when=LOG_ROTATE_WHEN, backup=LOG_BACKUP_COUNT,
    )
    settings = load_settings()
    emit(
        "gateway_config",
        base_path=settings.base_path, db_base_url=settings.db_base_url or "<derived>",
        xsl_url=settings.xsl_url, prepare_statements=settings.prepare_statements,
        private=settings.private, max_rows=settings.max_rows,
        max_body_bytes=settings.max_body_bytes,
    )
    if os.getenv("DB_INIT_SCHEMA", "true").lower() == "true":
        init_db()
        emit("db_init_done")
    yield
    # shutdown
    emit("app_shutdown")

# 4) 创建应用并装配
app = FastAPI(title="GridFactory DB gateway", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    # 对外只给 public_message；驱动报错 / SQL 只进日志
    fields = dict(
        method=request.method, path=str(request.url.path),
        status_code=exc.status_code, detail=exc.detail,
    )
    if exc.status_code >= 500:
        emit_error(exc.event, **fields)
    else:
        emit(exc.event, **fields)
    return PlainTextResponse(exc.public_message, status_code=exc.status_code)


@app.get("/health")
def health():
    return {"ok": True}

# 路由（前缀在导入时确定，改 GF_BASE_PATH 需重启）
app.include_router(records_api.router, prefix=load_settings().base_path, tags=["records"])
