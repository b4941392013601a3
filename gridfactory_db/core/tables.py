""""模块职能：

定义网关暴露的三张表及其差异点（原实现里散落在各处的 switch(table_num)）：

TableKind：JOB / HISTORY / NODE

TableSpec：每张表的 SQL 表名、URL 集合名、公开字段、XML 标签、列表视图突出字段。
三张表的单条记录都按 identifier 的最后一段定位（identifier LIKE '%/<uuid>'）

主要函数：

get_table(collection)：URL 集合名（jobs/history/nodes）→ TableSpec；未知集合返回 None

写权限策略按 TableKind 注册在 services/authorizer.py。"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

ID_COL = "identifier"
STATUS_COL = "csStatus"
PROVIDERINFO_COL = "providerInfo"
NODEID_COL = "nodeId"
LASTMODIFIED_COL = "lastModified"
CREATED_COL = "created"
DBURL_COL = "dbUrl"   # 伪列：不在库里，由 identifier 推导

# 空格分隔的列表字段 → XML 子元素名
LIST_FIELDS: Dict[str, str] = {
    "allowedVOs": "allowedVO",
    "hypervisors": "hypervisor",
    "inputFileURLs": "inputFileURL",
    "runtimeEnvironments": "runtimeEnvironment",
}
# "src1 dst1 src2 dst2 ..." 形式的映射字段
MAPPING_FIELDS = ("outFileMapping",)

JOB_PUB_FIELDS_STR = (
    "identifier\tname\tcsStatus\tuserInfo\tcreated\tlastModified\trunningSeconds\t"
    "ramMb\topSys\truntimeEnvironments\tallowedVOs\tvirtualize\tdbUrl"
)
NODE_PUB_FIELDS_STR = (
    "identifier\thost\tmaxJobs\tallowedVOs\tvirtualize\thypervisors\tmaxMBPerJob\t"
    "providerInfo\tcreated\tlastModified\tdbUrl"
)


class TableKind(str, Enum):
    JOB = "job"
    HISTORY = "history"
    NODE = "node"


@dataclass(frozen=True)
class TableSpec:
    kind: TableKind
    collection: str                  # URL 段：jobs / history / nodes
    sql_table: str
    public_fields_str: str           # tab 分隔，保持原格式，供 is_public_field 做整词匹配
    list_root_tag: str
    row_tag: str
    record_tag: str
    highlighted: Tuple[str, ...]     # XML 列表视图里 identifier 之外总会展示的字段（不受隐私过滤）


JOB_TABLE = TableSpec(
    kind=TableKind.JOB,
    collection="jobs",
    sql_table="jobDefinition",
    public_fields_str=JOB_PUB_FIELDS_STR,
    list_root_tag="jobs",
    row_tag="job",
    record_tag="job",
    highlighted=("name", STATUS_COL),
)

HISTORY_TABLE = TableSpec(
    kind=TableKind.HISTORY,
    collection="history",
    sql_table="jobHistory",
    public_fields_str=JOB_PUB_FIELDS_STR,
    list_root_tag="history",
    row_tag="job",
    record_tag="job",
    highlighted=("name", STATUS_COL),
)

NODE_TABLE = TableSpec(
    kind=TableKind.NODE,
    collection="nodes",
    sql_table="nodeInformation",
    public_fields_str=NODE_PUB_FIELDS_STR,
    list_root_tag="nodes",
    row_tag="node",
    record_tag="node",
    highlighted=("host", "subnodesDbUrl"),
)

TABLES: Dict[str, TableSpec] = {t.collection: t for t in (JOB_TABLE, HISTORY_TABLE, NODE_TABLE)}


def get_table(collection: str) -> Optional[TableSpec]:
    return TABLES.get(collection)
