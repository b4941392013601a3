"""
模块职能：
- 表字段自省（原 SHOW fields FROM ...）：首次访问某张表时向库查询列名，之后进程内复用。
- 缓存按 (数据库 URL, 表名) 区分，加锁保证并发首请求只建一次；运行期不失效，
  表结构在线变更后需要重启进程（或调用 SCHEMA_CACHE.clear()）。

类型：
- TableSchema：有序列名 + 关键列位置（identifier / csStatus / name / host / subnodesDbUrl）
- SchemaCache：读穿透缓存

日志：
- schema_introspect / schema_cache_hit / schema_error
"""
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gridfactory_db.core.errors import SchemaIntrospectionError
from gridfactory_db.core.tables import ID_COL, STATUS_COL, TableSpec
from gridfactory_db.infra.logger import emit, emit_error

KEY_COLUMNS = (ID_COL, STATUS_COL, "name", "host", "subnodesDbUrl")


@dataclass(frozen=True)
class TableSchema:
    table: str
    fields: Tuple[str, ...]

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    @property
    def key_columns(self) -> Dict[str, int]:
        """关键列 → 位置；表里没有的列不出现。"""
        return {c: self.fields.index(c) for c in KEY_COLUMNS if c in self.fields}

    def index_of(self, name: str) -> Optional[int]:
        return self.key_columns.get(name)


class SchemaCache:
    def __init__(self):
        self._lock = threading.Lock()
        self._cache: Dict[Tuple[str, str], TableSchema] = {}

    def fields(self, db: Session, spec: TableSpec) -> TableSchema:
        bind = db.get_bind()
        key = (str(bind.engine.url), spec.sql_table)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                emit("schema_cache_hit", table=spec.sql_table, level="DEBUG")
                return cached
            schema = _introspect(db, spec)
            self._cache[key] = schema
            return schema

    def clear(self):
        with self._lock:
            self._cache.clear()


def _introspect(db: Session, spec: TableSpec) -> TableSchema:
    try:
        cols = inspect(db.connection()).get_columns(spec.sql_table)
    except SQLAlchemyError as e:
        emit_error("schema_error", table=spec.sql_table, error=str(e))
        raise SchemaIntrospectionError(f"introspection of {spec.sql_table} failed: {e}")

    fields = tuple(c["name"] for c in cols)
    if not fields:
        emit_error("schema_error", table=spec.sql_table, error="no columns")
        raise SchemaIntrospectionError(f"table {spec.sql_table} has no columns")
    if ID_COL not in fields:
        emit_error("schema_error", table=spec.sql_table, error=f"missing {ID_COL} column")
        raise SchemaIntrospectionError(f"table {spec.sql_table} has no {ID_COL} column")

    schema = TableSchema(table=spec.sql_table, fields=fields)
    emit("schema_introspect", table=spec.sql_table, fields=list(fields), key_columns=schema.key_columns)
    return schema


SCHEMA_CACHE = SchemaCache()
