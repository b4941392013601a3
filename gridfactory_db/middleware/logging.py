"""
模块职责：网关访问日志中间件。
- 每个请求一个 request_id（响应头 x-request-id 回传，便于和 Apache 访问日志对照）；
- gw_request_start：方法、路径、查询串、集合名、是否带客户端证书主题、声明的请求体大小；
- gw_request_end：状态码、耗时，PUT 额外带上 X-Rows-Affected；
- 未被异常处理器接住的异常记 gw_request_error 后继续抛出，交给 FastAPI 返回 500。
"""
import time
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from gridfactory_db.core.config import load_settings
from gridfactory_db.infra.logger import emit, emit_error


def _collection(path: str, base_path: str) -> Optional[str]:
    # /db/jobs/<uuid> → "jobs"；不在网关前缀下的路径（/health）返回 None
    if base_path and not path.startswith(base_path + "/"):
        return None
    rest = path[len(base_path):].strip("/")
    return rest.split("/", 1)[0] or None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = uuid.uuid4().hex
        settings = load_settings()
        path = str(request.url.path)
        base = dict(request_id=rid, method=request.method, path=path)
        start = time.perf_counter()
        emit(
            "gw_request_start",
            query=str(request.url.query),
            collection=_collection(path, settings.base_path),
            has_client_dn=bool(request.headers.get(settings.client_dn_header)),
            content_length=request.headers.get("content-length"),
            **base,
        )
        try:
            response: Response = await call_next(request)
        except Exception as e:
            emit_error(
                "gw_request_error",
                error=repr(e),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                **base,
            )
            raise

        extra = {}
        if request.method == "PUT":
            extra["rows"] = response.headers.get("x-rows-affected")
        emit(
            "gw_request_end",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            **extra,
            **base,
        )
        response.headers["x-request-id"] = rid
        return response
