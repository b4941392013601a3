# gridfactory_db/core/context.py
"""
统一提供请求上下文（identity、role）。
- 身份优先取 TLS 终结方（Apache/nginx 反向代理）转发的客户端证书主题头，
  头名由 GF_CLIENT_DN_HEADER 配置，默认 X-SSL-Client-S-DN
- 没有证书头时兼容 Bearer JWT（HS256）：sub → identity，role → role
- 两者都没有 → 匿名（identity=None）；匿名可以读列表/单条，也可以改作业，
  但不能建立或修改节点记录（见 services/authorizer.py）
- 秘钥：优先 SECRET_KEY，其次 JWT_SECRET
- 事件打点：auth_client_dn / auth_token_invalid / auth_token_expired / auth_token_missing_sub
"""
from __future__ import annotations

import os
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from gridfactory_db.core.config import GatewaySettings, get_settings
from gridfactory_db.infra.logger import emit

ALGO = "HS256"
_bearer = HTTPBearer(auto_error=False)


def _get_secret() -> str:
    return os.getenv("SECRET_KEY") or os.getenv("JWT_SECRET") or "dev-secret"


class Context(BaseModel):
    identity: Optional[str] = None   # 例："/O=Grid/OU=nbi.dk/CN=Alice"
    role: str = "user"
    privileged: bool = False         # True 时列表视图不做公开字段过滤

    @classmethod
    def from_payload(cls, data: dict) -> "Context":
        uid = data.get("sub") or data.get("user_id") or data.get("username") or ""
        role = data.get("role") or "user"
        return cls(identity=str(uid), role=str(role), privileged=(role == "admin"))


def _context_from_token(token: str) -> Context:
    try:
        payload = jwt.decode(
            token,
            _get_secret(),
            algorithms=[ALGO],
            options={"verify_aud": False},
        )
    except jwt.ExpiredSignatureError:
        emit("auth_token_expired")
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.PyJWTError as e:
        emit("auth_token_invalid", error=str(e))
        raise HTTPException(status_code=401, detail="Invalid token")

    ctx = Context.from_payload(payload)
    if not ctx.identity:
        emit("auth_token_missing_sub")
        raise HTTPException(status_code=401, detail="Invalid token")
    return ctx


def get_context(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    settings: GatewaySettings = Depends(get_settings),
) -> Context:
    dn = (request.headers.get(settings.client_dn_header) or "").strip()
    if dn:
        ctx = Context(identity=dn)
        emit("auth_client_dn", identity=dn)
    elif creds and creds.credentials:
        ctx = _context_from_token(creds.credentials)
    else:
        ctx = Context()

    if ctx.identity and ctx.identity in settings.admin_subjects:
        ctx.privileged = True
    return ctx
