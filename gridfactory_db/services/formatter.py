"""
模块职能：
- 把查询结果渲染成响应体：tab 分隔文本或 XML。
- 列表视图（format_records）：text 可开启隐私过滤，只输出公开字段；XML 只输出 identifier、
  突出字段和 dbUrl。行数超过上限时截断并告警。
- 单条视图（format_record）：输出全部非空字段，不做隐私过滤。
- XML 子格式：空格分隔的列表字段展开成重复子元素；outFileMapping 展开成成对的
  <source>/<destination>；空值/NULL 字段整个省略，不输出空标签。

函数：
- is_public_field(field, public_fields_str)
- format_records(records, schema, spec, output_format, *, private, base_url, xsl_url, max_rows)
- format_record(record, schema, spec, output_format, *, base_url, xsl_url)

日志：
- recs_formatted / rows_truncated / rec_formatted
"""
import re
from typing import List, Optional, Sequence
from xml.sax.saxutils import escape

from gridfactory_db.core.record import Record
from gridfactory_db.core.tables import (
    DBURL_COL, ID_COL, LIST_FIELDS, MAPPING_FIELDS, TableSpec,
)
from gridfactory_db.infra.logger import emit, emit_warning
from gridfactory_db.services.query import OutputFormat
from gridfactory_db.services.schema import TableSchema

XML_DECL = '<?xml version="1.0"?>'
INDENT = "  "

_TOKEN_SEP = re.compile(r"[\t ]")


def is_public_field(field: str, public_fields_str: str) -> bool:
    """field 必须是公开字段串里完整的一个词（tab/空格分隔），"name" 不会命中 "hostname"。"""
    if not field:
        return False
    return field in _TOKEN_SEP.split(public_fields_str)


def _stylesheet(xsl_url: str, name: str) -> Optional[str]:
    if not xsl_url:
        return None
    href = f"{xsl_url.rstrip('/')}/{name}.xsl"
    return f'<?xml-stylesheet type="text/xsl" href="{escape(href, {chr(34): "&quot;"})}"?>'


def _xml_head(xsl_url: str, name: str) -> List[str]:
    lines = [XML_DECL]
    pi = _stylesheet(xsl_url, name)
    if pi:
        lines.append(pi)
    return lines


def _xml_field(name: str, value: str, depth: int) -> List[str]:
    """一个字段的 XML 行；空值返回 []。"""
    ind = INDENT * depth
    inner = INDENT * (depth + 1)
    if value == "":
        return []

    if name in LIST_FIELDS:
        items = value.split()
        if not items:
            return []
        sub = LIST_FIELDS[name]
        lines = [f"{ind}<{name}>"]
        lines += [f"{inner}<{sub}>{escape(it)}</{sub}>" for it in items]
        lines.append(f"{ind}</{name}>")
        return lines

    if name in MAPPING_FIELDS:
        items = value.split()
        if not items:
            return []
        lines = [f"{ind}<{name}>"]
        for i in range(0, len(items), 2):
            lines.append(f"{inner}<source>{escape(items[i])}</source>")
            if i + 1 < len(items):
                lines.append(f"{inner}<destination>{escape(items[i + 1])}</destination>")
        lines.append(f"{ind}</{name}>")
        return lines

    return [f"{ind}<{name}>{escape(value)}</{name}>"]


def _text_list(records: Sequence[Record], fields: Sequence[str], base_url: str) -> str:
    lines = ["\t".join(list(fields) + [DBURL_COL])]
    for rec in records:
        vals = [rec.text(f) for f in fields]
        vals.append(rec.db_url(base_url))
        lines.append("\t".join(vals))
    return "\n".join(lines)


def _xml_list(
    records: Sequence[Record], spec: TableSpec, schema: TableSchema, base_url: str, xsl_url: str,
) -> str:
    # 突出字段不受隐私过滤
    shown = [ID_COL] + [f for f in spec.highlighted if f in schema]
    lines = _xml_head(xsl_url, spec.list_root_tag)
    lines.append(f"<{spec.list_root_tag}>")
    for rec in records:
        lines.append(f"{INDENT}<{spec.row_tag}>")
        for f in shown:
            lines += _xml_field(f, rec.text(f), 2)
        lines += _xml_field(DBURL_COL, rec.db_url(base_url), 2)
        lines.append(f"{INDENT}</{spec.row_tag}>")
    lines.append(f"</{spec.list_root_tag}>")
    return "\n".join(lines)


def format_records(
    records: Sequence[Record],
    schema: TableSchema,
    spec: TableSpec,
    output_format: OutputFormat,
    *,
    private: bool,
    base_url: str,
    xsl_url: str = "",
    max_rows: int,
) -> str:
    if len(records) > max_rows:
        emit_warning("rows_truncated", table=spec.sql_table, max_rows=max_rows)
        records = records[:max_rows]

    if output_format is OutputFormat.XML:
        body = _xml_list(records, spec, schema, base_url, xsl_url)
    else:
        if private:
            fields = [f for f in schema.fields if is_public_field(f, spec.public_fields_str)]
        else:
            fields = list(schema.fields)
        body = _text_list(records, fields, base_url)

    emit("recs_formatted", table=spec.sql_table, format=output_format.value,
         rows=len(records), private=private)
    return body


def format_record(
    record: Record,
    schema: TableSchema,
    spec: TableSpec,
    output_format: OutputFormat,
    *,
    base_url: str,
    xsl_url: str = "",
) -> str:
    url = record.db_url(base_url)
    if output_format is OutputFormat.XML:
        lines = _xml_head(xsl_url, spec.record_tag)
        lines.append(f"<{spec.record_tag}>")
        for f in schema.fields:
            lines += _xml_field(f, record.text(f), 1)
        lines += _xml_field(DBURL_COL, url, 1)
        lines.append(f"</{spec.record_tag}>")
        body = "\n".join(lines)
    else:
        lines = [f"{f}: {record.text(f)}" for f in schema.fields]
        lines.append(f"{DBURL_COL}: {url}")
        body = "\n".join(lines)

    emit("rec_formatted", table=spec.sql_table, format=output_format.value,
         identifier=record.identifier)
    return body
