import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import HTTPException, Request
from jose import JWTError, jwt

from app.config import settings

ROLE_CUSTOMER = "customer"
ROLE_CASHIER = "cashier"
ROLE_ADMIN = "admin"
ROLES = (ROLE_CUSTOMER, ROLE_CASHIER, ROLE_ADMIN)


def _split_header_names(raw_value: str, fallback: list[str]) -> list[str]:
    names = [item.strip().lower() for item in (raw_value or "").split(",") if item.strip()]
    return names or fallback


TOKEN_HEADER_NAMES = _split_header_names(
    settings.AUTH_TOKEN_HEADERS,
    ["authorization", "x-auth-token"],
)
JWT_SECRET = settings.AUTH_JWT_SECRET or "tavoli-dev-secret"
JWT_ALGORITHM = settings.AUTH_JWT_ALGORITHM or "HS256"
logger = logging.getLogger("tavoli.security")


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def create_access_token(user_id: str, role: str, *, expires_minutes: int | None = None) -> str:
    if role not in ROLES:
        raise ValueError(f"unknown role: {role}")
    minutes = settings.AUTH_TOKEN_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    payload = {
        "sub": str(user_id),
        "role": role,
        "exp": datetime.utcnow() + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def _mask_user_id(user_id: str | None) -> str:
    value = (user_id or "").strip()
    if not value:
        return "-"
    if len(value) <= 8:
        return value
    return f"{value[:4]}...{value[-4:]}"


def _audit_auth_failure(
    request: Request | None,
    reason: str,
    *,
    user_id: str | None = None,
    role: str | None = None,
    token_present: bool | None = None,
) -> None:
    if not request:
        logger.warning("AUTH_DENY reason=%s", reason)
        return
    path = getattr(getattr(request, "url", None), "path", "-")
    method = getattr(request, "method", "-")
    client = getattr(request, "client", None)
    ip = getattr(client, "host", "-") if client else "-"
    if token_present is None:
        token_present = bool(_extract_auth_token(request))
    logger.warning(
        "AUTH_DENY reason=%s method=%s path=%s ip=%s user=%s role=%s token_present=%s",
        reason,
        method,
        path,
        ip,
        _mask_user_id(user_id),
        role or "-",
        int(bool(token_present)),
    )


def _extract_auth_token(request: Request) -> str | None:
    if not request:
        return None
    headers = getattr(request, "headers", None)
    token = None
    if headers:
        for name in TOKEN_HEADER_NAMES:
            value = headers.get(name)
            if not value:
                continue
            raw = value.strip()
            if not raw:
                continue
            if name == "authorization":
                if raw.lower().startswith("bearer "):
                    raw = raw.split(" ", 1)[1].strip()
                elif " " in raw:
                    # 仅支持 Bearer 格式
                    continue
            token = raw
            if token:
                break
    if not token:
        query = getattr(request, "query_params", None)
        if query:
            token = query.get("token") or query.get("access_token")
            if token:
                token = token.strip()
    return token or None


def decode_actor(token: str, *, request: Request | None = None) -> Actor:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        _audit_auth_failure(request, "invalid_token", token_present=True)
        raise HTTPException(status_code=401, detail="无效登录凭证")
    subject = payload.get("sub")
    if not subject:
        _audit_auth_failure(request, "token_missing_sub", token_present=True)
        raise HTTPException(status_code=401, detail="登录凭证缺少用户信息")
    role = payload.get("role")
    if role not in ROLES:
        _audit_auth_failure(request, "token_bad_role", user_id=str(subject), role=role, token_present=True)
        raise HTTPException(status_code=401, detail="登录凭证角色无效")
    return Actor(user_id=str(subject), role=role)


def get_request_actor(request: Request, *, required: bool = True) -> Actor | None:
    token = _extract_auth_token(request)
    if not token:
        if required:
            _audit_auth_failure(request, "missing_identity", token_present=False)
            raise HTTPException(status_code=401, detail="缺少用户身份")
        return None
    return decode_actor(token, request=request)


def require_role(request: Request, actor: Actor, *roles: str) -> Actor:
    if actor.role not in roles:
        _audit_auth_failure(request, "role_forbidden", user_id=actor.user_id, role=actor.role, token_present=True)
        raise HTTPException(status_code=403, detail=f"角色 '{actor.role}' 无权执行该操作")
    return actor
