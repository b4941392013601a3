"""
模块职能：
- 执行已通过授权的写操作：
  - UPDATE：lastModified 置为当前时间 + 本次提交的字段；客户端传来的 lastModified 忽略
  - INSERT：节点首次登记，identifier = 本网关的记录 URL（<集合 URL><uuid>，仍以 "/<uuid>" 结尾），
    providerInfo = 调用方身份
- 所有值走绑定参数；列名来自自省结果，用方言引用。
- 0 行命中不算错误（更新不存在的作业 identifier 照样返回成功）。

函数：
- apply(db, spec, schema, uuid, fields, *, create, identity, record_url, prepare_statements) → 影响行数
- execution_options(prepare_statements)：关闭 PrepareStatements 时禁用编译缓存

日志：
- rec_update / rec_insert / query_error
"""
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gridfactory_db.core.errors import QueryExecutionError
from gridfactory_db.core.tables import (
    CREATED_COL, ID_COL, LASTMODIFIED_COL, PROVIDERINFO_COL, TableSpec,
)
from gridfactory_db.infra.logger import emit, emit_error
from gridfactory_db.services.query import identifier_clause
from gridfactory_db.services.schema import TableSchema


def execution_options(prepare_statements: bool) -> dict:
    # 绑定参数始终开启；这个开关只决定是否复用 SQLAlchemy 的已编译语句缓存
    return {} if prepare_statements else {"compiled_cache": None}


def _timestamp_params(sql: str, names: List[str]):
    stmt = text(sql)
    if names:
        stmt = stmt.bindparams(*[bindparam(n, type_=DateTime()) for n in names])
    return stmt


def _update(db: Session, spec: TableSpec, schema: TableSchema, uuid: str,
            fields: Dict[str, str], now: datetime, opts: dict) -> int:
    quote = db.get_bind().dialect.identifier_preparer.quote
    sets, binds, ts = [], {}, []
    if LASTMODIFIED_COL in schema:
        sets.append(f"{quote(LASTMODIFIED_COL)} = :ts_lastModified")
        binds["ts_lastModified"] = now
        ts.append("ts_lastModified")
    for i, (col, value) in enumerate(fields.items()):
        if col == LASTMODIFIED_COL:
            continue
        sets.append(f"{quote(col)} = :v{i}")
        binds[f"v{i}"] = value
    if not sets:
        emit("rec_update", table=spec.sql_table, uuid=uuid, rows=0, skipped=True)
        return 0

    where, id_binds = identifier_clause(spec, uuid, db.get_bind().dialect)
    binds.update(id_binds)
    sql = f"UPDATE {quote(spec.sql_table)} SET {', '.join(sets)} WHERE {where}"
    res = db.execute(_timestamp_params(sql, ts), binds, execution_options=opts)
    db.commit()
    emit("rec_update", table=spec.sql_table, uuid=uuid, sql=sql,
         fields=sorted(fields), rows=res.rowcount)
    return res.rowcount


def _insert(db: Session, spec: TableSpec, schema: TableSchema, uuid: str, record_url: str,
            fields: Dict[str, str], identity: str, now: datetime, opts: dict) -> int:
    quote = db.get_bind().dialect.identifier_preparer.quote
    values: Dict[str, object] = {ID_COL: record_url}
    for col, value in fields.items():
        if col not in (ID_COL, LASTMODIFIED_COL, CREATED_COL, PROVIDERINFO_COL):
            values[col] = value
    if PROVIDERINFO_COL in schema:
        values[PROVIDERINFO_COL] = identity
    for col in (CREATED_COL, LASTMODIFIED_COL):
        if col in schema:
            values[col] = now

    cols = list(values)
    names = [f"v{i}" for i in range(len(cols))]
    ts = [n for n, c in zip(names, cols) if values[c] is now]
    sql = (
        f"INSERT INTO {quote(spec.sql_table)} ({', '.join(quote(c) for c in cols)}) "
        f"VALUES ({', '.join(':' + n for n in names)})"
    )
    binds = {n: values[c] for n, c in zip(names, cols)}
    res = db.execute(_timestamp_params(sql, ts), binds, execution_options=opts)
    db.commit()
    emit("rec_insert", table=spec.sql_table, uuid=uuid, identifier=record_url, fields=sorted(fields),
         owner=identity, rows=res.rowcount)
    return res.rowcount


def apply(
    db: Session,
    spec: TableSpec,
    schema: TableSchema,
    uuid: str,
    fields: Dict[str, str],
    *,
    create: bool = False,
    identity: Optional[str] = None,
    record_url: Optional[str] = None,
    prepare_statements: bool = True,
) -> int:
    now = datetime.now()
    opts = execution_options(prepare_statements)
    try:
        if create:
            return _insert(db, spec, schema, uuid, record_url or uuid, fields, identity or "", now, opts)
        return _update(db, spec, schema, uuid, fields, now, opts)
    except SQLAlchemyError as e:
        db.rollback()
        emit_error("query_error", table=spec.sql_table, uuid=uuid,
                   op="insert" if create else "update", error=str(e))
        raise QueryExecutionError(f"write to {spec.sql_table} failed: {e}")
