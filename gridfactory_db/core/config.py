"""
模块职责：网关配置（原 Apache 指令 DBBaseURL / PrepareStatements 以及 XSL 目录等）。

- 全部来自环境变量（main.py 启动时已用 python-dotenv 加载 .env.example / .env）
- load_settings() 每次读取环境变量生成不可变的 GatewaySettings，不在模块级缓存，
  测试里改环境变量或用 dependency_overrides 覆盖 get_settings 都能生效
- 这些值只通过参数/依赖注入传入核心逻辑，不存在请求间共享的可变全局量
"""
import os
from dataclasses import dataclass, field
from typing import Tuple

from gridfactory_db.core.errors import ConfigurationError


def _get_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip().lower() in ("1", "true", "on", "yes")


def _get_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    try:
        n = int(v)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {v!r}")
    if n <= 0:
        raise ConfigurationError(f"{name} must be positive, got {n}")
    return n


def _normalize_base_path(p: str) -> str:
    p = "/" + p.strip().strip("/")
    return "" if p == "/" else p


@dataclass(frozen=True)
class GatewaySettings:
    base_path: str = "/db"
    db_base_url: str = ""                 # 为空时按请求的 host/port 推导
    xsl_url: str = ""                     # 为空时不输出 xml-stylesheet 指令
    prepare_statements: bool = True
    private: bool = True                  # 列表视图是否启用公开字段过滤
    max_rows: int = 5000
    max_body_bytes: int = 1024 * 1024
    client_dn_header: str = "X-SSL-Client-S-DN"
    admin_subjects: Tuple[str, ...] = field(default_factory=tuple)


def load_settings() -> GatewaySettings:
    admins = os.getenv("GF_ADMIN_SUBJECTS", "")
    return GatewaySettings(
        base_path=_normalize_base_path(os.getenv("GF_BASE_PATH", "/db")),
        db_base_url=os.getenv("GF_DB_BASE_URL", "").strip(),
        xsl_url=os.getenv("GF_XSL_URL", "").strip(),
        prepare_statements=_get_bool("DB_PREPARE_STATEMENTS", True),
        private=_get_bool("GF_PRIVATE", True),
        max_rows=_get_int("GF_MAX_ROWS", 5000),
        max_body_bytes=_get_int("GF_MAX_BODY_BYTES", 1024 * 1024),
        client_dn_header=os.getenv("GF_CLIENT_DN_HEADER", "X-SSL-Client-S-DN").strip(),
        admin_subjects=tuple(s.strip() for s in admins.split(";") if s.strip()),
    )


def get_settings() -> GatewaySettings:
    """FastAPI 依赖：测试可通过 app.dependency_overrides[get_settings] 替换。"""
    return load_settings()
