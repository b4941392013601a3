"""
模块职能：
- PUT 之前的写权限判定。每张表一条策略，按 TableKind 注册在 POLICIES：
  - 作业（jobDefinition）：把本次修改归类为 NO_CHANGE / STATUS_ONLY / OTHER；
    当前记录 csStatus 以 "ready" 开头时，OTHER 一律拒绝（只允许改 csStatus/providerInfo/nodeId）
  - 节点（nodeInformation）：必须有身份。已存在 → 只有建档时写入 providerInfo 的同一身份能改；
    不存在 → 视为建档，由 mutator 执行 INSERT。请求体里的 providerInfo 只能等于调用方身份
  - 历史（jobHistory）：只读，一律拒绝
- 调用方身份来自传输层（客户端证书主题），本模块只做比较，不做鉴别。

函数：
- classify_job_update(fields) → UpdateClass
- authorize(spec, fields, current, identity) → Decision

日志：
- put_authorized / put_denied
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from gridfactory_db.core.record import Record
from gridfactory_db.core.tables import (
    LASTMODIFIED_COL, NODEID_COL, PROVIDERINFO_COL, STATUS_COL, TableKind, TableSpec,
)
from gridfactory_db.infra.logger import emit

READY = "ready"

# ready 状态下仍允许修改的字段
STATUS_FIELDS = frozenset({STATUS_COL, PROVIDERINFO_COL, NODEID_COL})


class UpdateClass(str, Enum):
    NO_CHANGE = "no_change"       # 只有 lastModified
    STATUS_ONLY = "status_only"   # 只有 csStatus / providerInfo / nodeId
    OTHER = "other"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    create: bool = False          # True：记录不存在，改为 INSERT
    reason: str = ""


def classify_job_update(fields: Iterable[str]) -> UpdateClass:
    keys = set(fields) - {LASTMODIFIED_COL}
    if not keys:
        return UpdateClass.NO_CHANGE
    if keys <= STATUS_FIELDS:
        return UpdateClass.STATUS_ONLY
    return UpdateClass.OTHER


def _authorize_job(fields: Dict[str, str], current: Optional[Record], identity: Optional[str]) -> Decision:
    cls = classify_job_update(fields)
    status = current.status if current is not None else None
    # 取前缀语义：csStatus 以 "ready" 开头（如 "ready:node-17"）即视为已被节点认领
    if cls is UpdateClass.OTHER and status is not None and status.startswith(READY):
        return Decision(False, reason=f"job is {status}; only csStatus, providerInfo, nodeId may change")
    return Decision(True, reason=cls.value)


def _authorize_history(fields: Dict[str, str], current: Optional[Record], identity: Optional[str]) -> Decision:
    return Decision(False, reason="history is read-only")


def _authorize_node(fields: Dict[str, str], current: Optional[Record], identity: Optional[str]) -> Decision:
    if not identity:
        return Decision(False, reason="anonymous callers cannot register or update nodes")
    # providerInfo 记录的是属主，只能原样重复，不能改成别人
    if PROVIDERINFO_COL in fields and fields[PROVIDERINFO_COL] != identity:
        return Decision(False, reason="providerInfo is fixed to the registering identity")
    if current is None:
        return Decision(True, create=True, reason="create")
    if identity != current.text(PROVIDERINFO_COL):
        return Decision(False, reason="caller is not the node owner")
    return Decision(True, reason="owner")


Policy = Callable[[Dict[str, str], Optional[Record], Optional[str]], Decision]

POLICIES: Dict[TableKind, Policy] = {
    TableKind.JOB: _authorize_job,
    TableKind.HISTORY: _authorize_history,
    TableKind.NODE: _authorize_node,
}


def authorize(
    spec: TableSpec, fields: Dict[str, str], current: Optional[Record], identity: Optional[str],
) -> Decision:
    decision = POLICIES[spec.kind](fields, current, identity)
    if decision.allowed:
        emit("put_authorized", table=spec.sql_table, fields=sorted(fields),
             identity=identity, reason=decision.reason, create=decision.create)
    else:
        emit("put_denied", table=spec.sql_table, fields=sorted(fields),
             identity=identity, reason=decision.reason,
             current_identifier=current.identifier if current is not None else None)
    return decision
