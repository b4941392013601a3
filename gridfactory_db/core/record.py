""""模块职能：

一行记录的类型化表示：按列名取值（替代旧实现里的 id_col_nr / status_col_nr 位置下标），
并负责伪列 dbUrl 的推导。

主要类型/函数：

Record.from_mapping(row)：由 SQLAlchemy RowMapping 构造，保持列顺序

Record.text(name)：取值并转成字符串；NULL → ""

db_url(base_url, identifier)：base_url + identifier 最后一个 "/" 之后的部分"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from gridfactory_db.core.tables import ID_COL, STATUS_COL


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def db_url(base_url: str, identifier: str) -> str:
    # ".../jobs/abc-123" → base_url + "abc-123"；末尾多余的 "/" 不算
    uuid = identifier.rstrip("/").rsplit("/", 1)[-1]
    return base_url + uuid


@dataclass(frozen=True)
class Record:
    values: Dict[str, Any]

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "Record":
        return cls(values=dict(row))

    def text(self, name: str) -> str:
        return as_text(self.values.get(name))

    @property
    def identifier(self) -> str:
        return self.text(ID_COL)

    @property
    def status(self) -> Optional[str]:
        v = self.values.get(STATUS_COL)
        return None if v is None else as_text(v)

    def db_url(self, base_url: str) -> str:
        return db_url(base_url, self.identifier)
