# gridfactory_db/api/deps/scope.py
from fastapi import Depends, Request

from gridfactory_db.core.config import GatewaySettings, get_settings
from gridfactory_db.core.context import Context, get_context
from gridfactory_db.infra.logger import emit
from gridfactory_db.services.records import RequestScope


def root_url(request: Request, settings: GatewaySettings) -> str:
    """
    记录链接（dbUrl）的根地址，末尾带 "/"，各集合再拼上 jobs/ history/ nodes/。
    配置了 GF_DB_BASE_URL 就用它；否则按本次请求推导 https://<host>[:port]<base_path>/，
    443 端口不写。
    """
    if settings.db_base_url:
        return settings.db_base_url.rstrip("/") + "/"
    url = f"https://{request.url.hostname or 'localhost'}"
    port = request.url.port
    if port and port != 443:
        url += f":{port}"
    return f"{url}{settings.base_path}/"


def get_scope(
    request: Request,
    settings: GatewaySettings = Depends(get_settings),
    ctx: Context = Depends(get_context),
) -> RequestScope:
    scope = RequestScope(
        root_url=root_url(request, settings),
        xsl_url=settings.xsl_url,
        private=settings.private and not ctx.privileged,
        max_rows=settings.max_rows,
        prepare_statements=settings.prepare_statements,
    )
    emit("request_scope", root_url=scope.root_url, private=scope.private, level="DEBUG")
    return scope
