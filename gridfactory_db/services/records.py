"""
模块职能：
- 网关三个操作的编排（路由层只做 HTTP 适配，逻辑都在这里）：
  - list_records：解析查询串 → 自省字段 → 参数化 SELECT（最多取 max_rows+1 行）→ 渲染
  - get_record：按 uuid 定位单条 → 渲染（不做隐私过滤）
  - put_record：解析请求体 → 校验字段 → 读当前记录（后缀命中多条 → 400）→ 授权 → UPDATE / INSERT
    （节点建档时 identifier 存完整的记录 URL）
- 每个请求的可变值（集合 URL、XSL 目录、隐私开关、行数上限）都装在 RequestScope 里显式传入。

日志：
- recs_fetched / rec_not_found / rec_ambiguous / query_error
"""
from dataclasses import dataclass
from typing import List, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gridfactory_db.core.context import Context
from gridfactory_db.core.errors import AuthorizationDenied, BadRequest, NotFound, QueryExecutionError
from gridfactory_db.core.record import Record
from gridfactory_db.core.tables import TableSpec
from gridfactory_db.infra.logger import emit, emit_error, emit_warning
from gridfactory_db.services import authorizer, mutator
from gridfactory_db.services.formatter import format_record, format_records
from gridfactory_db.services.payload import parse_put_body, validate_fields
from gridfactory_db.services.query import (
    OutputFormat, build_list_query, build_record_query, parse_format, parse_list_params,
)
from gridfactory_db.services.schema import SCHEMA_CACHE

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"
XML_MEDIA_TYPE = "text/xml; charset=utf-8"


@dataclass(frozen=True)
class RequestScope:
    root_url: str                 # 例："https://grid.nbi.dk/db/"
    xsl_url: str = ""
    private: bool = True
    max_rows: int = 5000
    prepare_statements: bool = True

    def collection_url(self, spec: TableSpec) -> str:
        return f"{self.root_url}{spec.collection}/"


def media_type(fmt: OutputFormat) -> str:
    return XML_MEDIA_TYPE if fmt is OutputFormat.XML else TEXT_MEDIA_TYPE


def _fetch(db: Session, spec: TableSpec, sql: str, binds: dict, limit: int, prepare: bool) -> List[Record]:
    try:
        res = db.execute(text(sql), binds, execution_options=mutator.execution_options(prepare))
        rows = res.mappings().fetchmany(limit)
        res.close()
    except SQLAlchemyError as e:
        emit_error("query_error", table=spec.sql_table, op="select", error=str(e))
        raise QueryExecutionError(f"select from {spec.sql_table} failed: {e}")
    return [Record.from_mapping(r) for r in rows]


def _lookup(db: Session, spec: TableSpec, uuid: str, prepare: bool) -> List[Record]:
    """按 identifier 后缀查记录，最多取 2 行（够判断是否唯一）。"""
    sql, binds = build_record_query(spec, uuid, db.get_bind().dialect)
    found = _fetch(db, spec, sql, binds, 2, prepare)
    if len(found) > 1:
        emit_warning("rec_ambiguous", table=spec.sql_table, uuid=uuid,
                     identifiers=[r.identifier for r in found])
    return found


def list_records(db: Session, spec: TableSpec, items: List[Tuple[str, str]], scope: RequestScope) -> Tuple[str, str]:
    params = parse_list_params(items)
    schema = SCHEMA_CACHE.fields(db, spec)
    sql, binds = build_list_query(spec, schema, params, db.get_bind().dialect)
    records = _fetch(db, spec, sql, binds, scope.max_rows + 1, scope.prepare_statements)
    emit("recs_fetched", table=spec.sql_table, rows=len(records))
    body = format_records(
        records, schema, spec, params.output_format,
        private=scope.private,
        base_url=scope.collection_url(spec),
        xsl_url=scope.xsl_url,
        max_rows=scope.max_rows,
    )
    return body, media_type(params.output_format)


def get_record(db: Session, spec: TableSpec, uuid: str, items: List[Tuple[str, str]], scope: RequestScope) -> Tuple[str, str]:
    fmt = parse_format(items)
    schema = SCHEMA_CACHE.fields(db, spec)
    found = _lookup(db, spec, uuid, scope.prepare_statements)
    if not found:
        emit("rec_not_found", table=spec.sql_table, uuid=uuid)
        raise NotFound(f"no {spec.sql_table} record for {uuid}")
    rec = found[0]
    body = format_record(
        rec, schema, spec, fmt,
        base_url=scope.collection_url(spec),
        xsl_url=scope.xsl_url,
    )
    return body, media_type(fmt)


def put_record(db: Session, spec: TableSpec, uuid: str, raw: str, ctx: Context, scope: RequestScope) -> int:
    fields = parse_put_body(raw)
    schema = SCHEMA_CACHE.fields(db, spec)
    validate_fields(fields, schema, spec)

    found = _lookup(db, spec, uuid, scope.prepare_statements)
    if len(found) > 1:
        # 后缀命中多行时 UPDATE 会把它们一起改掉
        raise BadRequest(f"{uuid} matches more than one {spec.sql_table} record.")
    current = found[0] if found else None
    decision = authorizer.authorize(spec, fields, current, ctx.identity)
    if not decision.allowed:
        raise AuthorizationDenied(decision.reason)

    return mutator.apply(
        db, spec, schema, uuid, fields,
        create=decision.create,
        identity=ctx.identity,
        record_url=scope.collection_url(spec) + uuid,
        prepare_statements=scope.prepare_statements,
    )
