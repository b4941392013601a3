# gridfactory_db/api/records.py
# -*- coding: utf-8 -*-
"""
GridFactory 作业库 Web 接口
------------------------------------------------
职能：
- GET  {base}/{jobs|history|nodes}/          列表（隐私过滤；format/start/end/列名=值）
- GET  {base}/{jobs|history|nodes}/<uuid>    单条（不过滤）
- PUT  {base}/{jobs|nodes}/<uuid>            更新 / 节点首次登记（请求体为 "key: value" 行）
- 其他方法一律 405，Allow: GET, PUT

引用库：
- FastAPI: 路由、依赖注入
- Starlette: run_in_threadpool（PUT 需要异步读请求体、同步访问数据库）
- 自有模块:
    - gridfactory_db.services.records: 列表/单条/写入的编排
    - gridfactory_db.api.deps.scope.get_scope: 本次请求的 dbUrl 根地址、XSL 目录、隐私开关
    - gridfactory_db.core.context.get_context: 调用方身份（客户端证书主题 / Bearer JWT / 匿名）
    - gridfactory_db.infra.logger.emit: 结构化日志

运行逻辑（PUT）：
1) 集合名 → TableSpec，未知集合 404
2) 读请求体：Content-Length 或实际字节数超过 GF_MAX_BODY_BYTES → 413（不解析）
3) 解析 / 校验字段 → 读当前记录 → 授权（拒绝 → 403）→ UPDATE 或 INSERT
4) 成功 200；库错误 500（详情只进日志）
"""
from typing import Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from gridfactory_db.api.deps.scope import get_scope
from gridfactory_db.core.config import GatewaySettings, get_settings
from gridfactory_db.core.context import Context, get_context
from gridfactory_db.core.errors import NotFound
from gridfactory_db.core.tables import TableSpec, get_table
from gridfactory_db.infra.db import get_db
from gridfactory_db.infra.logger import emit
from gridfactory_db.services import records as rec_svc
from gridfactory_db.services.payload import read_limited_body
from gridfactory_db.services.records import RequestScope

router = APIRouter()

ALLOWED_METHODS = "GET, PUT"
OTHER_METHODS = ["POST", "DELETE", "PATCH", "OPTIONS"]


def _table(collection: str) -> TableSpec:
    spec = get_table(collection)
    if spec is None:
        emit("collection_unknown", collection=collection)
        raise NotFound(f"unknown collection {collection!r}")
    return spec


def _uuid(record_id: str) -> str:
    # /db/jobs/<uuid>/ 也接受；只取最后一段
    uuid = record_id.strip("/").rsplit("/", 1)[-1]
    if not uuid:
        raise NotFound("empty record identifier")
    return uuid


def _respond(result: Tuple[str, str]) -> Response:
    body, media = result
    return Response(content=body, media_type=media)


@router.get("/{collection}/", summary="List records")
def list_records(
    collection: str,
    request: Request,
    db: Session = Depends(get_db),
    scope: RequestScope = Depends(get_scope),
):
    spec = _table(collection)
    items = list(request.query_params.multi_items())
    emit("recs_get", table=spec.sql_table, args=str(request.query_params), private=scope.private)
    return _respond(rec_svc.list_records(db, spec, items, scope))


@router.get("/{collection}/{record_id:path}", summary="Get record")
def get_record(
    collection: str,
    record_id: str,
    request: Request,
    db: Session = Depends(get_db),
    scope: RequestScope = Depends(get_scope),
):
    spec = _table(collection)
    uuid = _uuid(record_id)
    emit("rec_get", table=spec.sql_table, uuid=uuid)
    return _respond(rec_svc.get_record(db, spec, uuid, list(request.query_params.multi_items()), scope))


@router.put("/{collection}/{record_id:path}", summary="Update or register record")
async def put_record(
    collection: str,
    record_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ctx: Context = Depends(get_context),
    scope: RequestScope = Depends(get_scope),
    settings: GatewaySettings = Depends(get_settings),
):
    spec = _table(collection)
    uuid = _uuid(record_id)
    emit("rec_put", table=spec.sql_table, uuid=uuid, identity=ctx.identity,
         content_type=request.headers.get("content-type"))

    raw = await read_limited_body(request, settings.max_body_bytes)
    rows = await run_in_threadpool(
        rec_svc.put_record, db, spec, uuid, raw.decode("utf-8", errors="replace"), ctx, scope,
    )
    emit("rec_put_ok", table=spec.sql_table, uuid=uuid, rows=rows)
    return PlainTextResponse("", headers={"X-Rows-Affected": str(rows)})


@router.api_route("/{collection}/", methods=OTHER_METHODS, include_in_schema=False)
@router.api_route("/{collection}/{record_id:path}", methods=OTHER_METHODS, include_in_schema=False)
def method_not_allowed(request: Request):
    emit("method_not_allowed", method=request.method, path=str(request.url.path))
    return PlainTextResponse("Method Not Allowed", status_code=405, headers={"Allow": ALLOWED_METHODS})
