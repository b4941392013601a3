"""
模块职能：
- 解析列表请求的查询串：format / start / end，其余键一律视为等值过滤（列名=值）。
- 生成参数绑定的 SELECT：列名/表名用方言的标识符引用，值全部走绑定参数，绝不拼接。
- 多个过滤条件用 AND 组合（旧实现会拼出多个 WHERE）。
- 分页：start+end → LIMIT end-start+1 OFFSET start；只有 end → LIMIT end+1；只有 start → 400。

函数：
- parse_list_params(items) / parse_format(items)
- build_list_query(spec, schema, params, dialect)
- build_record_query(spec, uuid, dialect) / identifier_clause(spec, uuid, preparer)

日志：
- query_format_unknown / recs_query / rec_query
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.engine import Dialect

from gridfactory_db.core.errors import BadRequest
from gridfactory_db.core.tables import ID_COL, TableSpec
from gridfactory_db.infra.logger import emit, emit_warning
from gridfactory_db.services.schema import TableSchema

FORMAT_STR = "format"
START_STR = "start"
END_STR = "end"


class OutputFormat(str, Enum):
    TEXT = "text"
    XML = "xml"


@dataclass
class ListParams:
    output_format: OutputFormat = OutputFormat.TEXT
    start: Optional[int] = None
    end: Optional[int] = None
    filters: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def limit(self) -> Optional[Tuple[int, int]]:
        """(offset, row_count)；不分页时为 None。"""
        if self.end is None:
            return None
        if self.start is None:
            return (0, self.end + 1)
        return (self.start, self.end - self.start + 1)


def _parse_format(value: str) -> OutputFormat:
    try:
        return OutputFormat(value)
    except ValueError:
        # 与旧模块一致：未知格式只记日志，按 text 返回
        emit_warning("query_format_unknown", format=value)
        return OutputFormat.TEXT


def _parse_index(name: str, value: str) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise BadRequest(f"'{name}' must be a non-negative integer, got {value!r}")
    if n < 0:
        raise BadRequest(f"'{name}' must be a non-negative integer, got {n}")
    return n


def parse_format(items: Iterable[Tuple[str, str]]) -> OutputFormat:
    """单条记录的 GET 只认 format，其余参数忽略。"""
    fmt = OutputFormat.TEXT
    for k, v in items:
        if k == FORMAT_STR:
            fmt = _parse_format(v)
    return fmt


def parse_list_params(items: Iterable[Tuple[str, str]]) -> ListParams:
    params = ListParams()
    for k, v in items:
        if k == FORMAT_STR:
            params.output_format = _parse_format(v)
        elif k == START_STR:
            params.start = _parse_index(START_STR, v)
        elif k == END_STR:
            params.end = _parse_index(END_STR, v)
        else:
            params.filters.append((k, v))

    if params.start is not None and params.end is None:
        raise BadRequest("When specifying 'start' you MUST specify 'end' as well.")
    if params.start is not None and params.end < params.start:
        raise BadRequest(f"'end' ({params.end}) must not be smaller than 'start' ({params.start}).")
    return params


LIKE_ESCAPE = "!"   # 反斜杠在 MySQL 字面量里本身要转义，换一个两边都安全的转义符


def _escape_like(value: str) -> str:
    e = LIKE_ESCAPE
    return value.replace(e, e + e).replace("%", e + "%").replace("_", e + "_")


def identifier_clause(spec: TableSpec, uuid: str, dialect: Dialect) -> Tuple[str, Dict[str, str]]:
    """
    定位单条记录的 WHERE 子句（不含 WHERE 关键字）。三张表一样：identifier 以 "/<uuid>" 结尾。
    uuid 里的 % _ ! 先转义，避免被当成通配符。
    """
    col = dialect.identifier_preparer.quote(ID_COL)
    return f"{col} LIKE :id_pattern ESCAPE '{LIKE_ESCAPE}'", {"id_pattern": "%/" + _escape_like(uuid)}


def build_list_query(
    spec: TableSpec, schema: TableSchema, params: ListParams, dialect: Dialect,
) -> Tuple[str, Dict[str, object]]:
    quote = dialect.identifier_preparer.quote
    sql = f"SELECT * FROM {quote(spec.sql_table)}"
    binds: Dict[str, object] = {}

    clauses = []
    for i, (col, value) in enumerate(params.filters):
        if col not in schema:
            raise BadRequest(f"Unknown field '{col}' for {spec.collection}.")
        name = f"f{i}"
        clauses.append(f"{quote(col)} = :{name}")
        binds[name] = value
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)

    limit = params.limit
    if limit is not None:
        offset, count = limit
        sql += " LIMIT :limit OFFSET :offset"
        binds["limit"] = count
        binds["offset"] = offset

    emit("recs_query", table=spec.sql_table, sql=sql,
         filters=[c for c, _ in params.filters], limit=limit)
    return sql, binds


def build_record_query(spec: TableSpec, uuid: str, dialect: Dialect) -> Tuple[str, Dict[str, str]]:
    where, binds = identifier_clause(spec, uuid, dialect)
    sql = f"SELECT * FROM {dialect.identifier_preparer.quote(spec.sql_table)} WHERE {where}"
    emit("rec_query", table=spec.sql_table, sql=sql, uuid=uuid)
    return sql, binds
