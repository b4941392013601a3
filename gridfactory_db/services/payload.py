"""
模块职能：
- 解析 PUT 请求体：每行一个 "key: value"。
  - "+" 视为空格，key/value 去掉前导空格后做 URL 反转义
  - 没有 ":" 的行 → value 为空串；空行跳过；重复 key 以后出现的为准
- 校验字段：必须是表里的列（自省结果），identifier 不允许改。

函数：
- read_limited_body(request, max_bytes)：先看 Content-Length，再按实际读到的字节数兜底
- parse_put_body(raw) → dict
- validate_fields(fields, schema, spec)

日志：
- put_body_parsed / put_too_large
"""
from typing import Dict
from urllib.parse import unquote

from starlette.requests import Request

from gridfactory_db.core.errors import BadRequest, OversizedRequestError
from gridfactory_db.core.tables import ID_COL, TableSpec
from gridfactory_db.infra.logger import emit
from gridfactory_db.services.schema import TableSchema


async def read_limited_body(request: Request, max_bytes: int) -> bytes:
    clen = request.headers.get("content-length")
    if clen is not None:
        try:
            declared = int(clen)
        except ValueError:
            raise BadRequest(f"Invalid Content-Length {clen!r}")
        if declared > max_bytes:
            raise OversizedRequestError(f"Request too big ({declared} bytes; limit {max_bytes}).")

    received = bytearray()
    async for chunk in request.stream():
        received += chunk
        if len(received) > max_bytes:
            raise OversizedRequestError(f"Request too big (>{max_bytes} bytes read; limit {max_bytes}).")
    return bytes(received)


def parse_put_body(raw: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for line in raw.split("\n"):
        line = line.rstrip("\r")
        if not line.strip():
            continue
        line = line.replace("+", " ")
        key, sep, value = line.partition(":")
        key = unquote(key.lstrip(" "))
        value = unquote(value.lstrip(" ")) if sep else ""
        fields[key] = value
    emit("put_body_parsed", keys=sorted(fields))
    return fields


def validate_fields(fields: Dict[str, str], schema: TableSchema, spec: TableSpec):
    unknown = [k for k in fields if k not in schema]
    if unknown:
        raise BadRequest(f"Unknown field(s) for {spec.collection}: {', '.join(sorted(unknown))}")
    if ID_COL in fields:
        raise BadRequest(f"'{ID_COL}' cannot be changed.")
