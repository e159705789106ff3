"""
安全策略 - 密码编码、JWT 与 CORS

- ``PepperPasswordEncoder``: 明文密码拼接 pepper 后交给 bcrypt
- ``create_access_token`` / ``decode_access_token``: 无状态 Bearer 认证
- ``cors_options``: CORSMiddleware 参数
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Iterable, Optional

import bcrypt
import jwt

from core.config import SecuritySettings, settings


ANONYMOUS = "anonymous"

# bcrypt 只处理前 72 字节，超长输入直接拒绝而不是静默截断
BCRYPT_MAX_BYTES = 72

ALLOWED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
ALLOWED_HEADERS = ["Authorization", "Content-Type", "Cookie", "Cache-Control"]


class PepperPasswordEncoder:
    """bcrypt password encoder with a server-side pepper.

    The pepper is a process-wide secret appended to the raw password before
    hashing; the per-hash salt is still generated by bcrypt.
    """

    def __init__(self, pepper: str, strength: int = 12) -> None:
        if not pepper:
            raise ValueError("Password pepper must not be empty")
        if not 4 <= strength <= 31:
            raise ValueError("bcrypt strength must be between 4 and 31")
        self._pepper = pepper
        self._strength = strength

    @property
    def strength(self) -> int:
        return self._strength

    def _peppered(self, raw_password: str) -> bytes:
        data = (raw_password + self._pepper).encode("utf-8")
        if len(data) > BCRYPT_MAX_BYTES:
            raise ValueError(
                f"Password too long: peppered input exceeds {BCRYPT_MAX_BYTES} bytes"
            )
        return data

    def encode(self, raw_password: Optional[str]) -> str:
        if raw_password is None:
            raise ValueError("Raw password cannot be None")
        hashed = bcrypt.hashpw(self._peppered(raw_password), bcrypt.gensalt(rounds=self._strength))
        return hashed.decode("utf-8")

    def matches(self, raw_password: Optional[str], encoded_password: Optional[str]) -> bool:
        if raw_password is None or encoded_password is None:
            return False
        try:
            return bcrypt.checkpw(self._peppered(raw_password), encoded_password.encode("utf-8"))
        except ValueError:
            # malformed hash or over-long input
            return False


@lru_cache(maxsize=1)
def get_password_encoder() -> PepperPasswordEncoder:
    """进程级密码编码器（基于配置的 pepper 与强度）"""
    return PepperPasswordEncoder(
        settings.security.password_pepper,
        strength=settings.security.password_strength,
    )


@dataclass(frozen=True)
class Principal:
    """当前请求的认证主体"""

    name: str
    authenticated: bool = True
    roles: frozenset[str] = field(default_factory=frozenset)
    claims: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def anonymous(cls) -> "Principal":
        return cls(name=ANONYMOUS, authenticated=False)

    def has_roles(self, *roles: str) -> bool:
        return set(roles).issubset(self.roles)


def resolve_auditor(principal: Optional[Principal]) -> str:
    """审计字段使用的操作人：已认证主体的名称，否则为 anonymous。"""
    if principal is None or not principal.authenticated or not principal.name:
        return ANONYMOUS
    return principal.name


def create_access_token(
    subject: str,
    *,
    roles: Iterable[str] = (),
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[dict[str, Any]] = None,
) -> str:
    """创建访问令牌"""
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta is not None
        else timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload: dict[str, Any] = dict(extra_claims or {})
    payload.update({
        "sub": str(subject),
        "roles": sorted(roles),
        "exp": expire,
        "type": "access",
    })
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Principal:
    """校验并解析访问令牌。

    PyJWT 的异常（过期/签名错误/格式错误）原样抛出，由全局异常处理器映射。
    """
    payload = jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.ALGORITHM],
        options={"require": ["exp", "sub"]},
    )
    if payload.get("type", "access") != "access":
        raise jwt.InvalidTokenError("Not an access token")
    return Principal(
        name=str(payload["sub"]),
        roles=_roles_claim(payload.get("roles")),
        claims=payload,
    )


def _roles_claim(value: Any) -> frozenset[str]:
    # 单个字符串视为一个角色
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset([value])
    if not isinstance(value, (list, tuple)) or not all(isinstance(r, str) for r in value):
        raise jwt.InvalidTokenError("Invalid roles claim")
    return frozenset(value)


def origin_pattern_to_regex(pattern: str) -> str:
    """``https://*.example.com`` -> ``https://[^/]+\\.example\\.com``"""
    return "".join("[^/]+" if part == "*" else re.escape(part) for part in re.split(r"(\*)", pattern))


def cors_options(security: Optional[SecuritySettings] = None) -> dict[str, Any]:
    """构造 CORSMiddleware 参数。

    精确的来源放入 ``allow_origins``；含通配符的模式合并为 ``allow_origin_regex``。
    单独的 ``*`` 表示允许任意来源（携带凭证时 Starlette 会回显请求来源）。
    """
    security = security or settings.security
    exact = [o for o in security.allowed_origins if "*" not in o or o == "*"]
    patterns = [o for o in security.allowed_origins if "*" in o and o != "*"]
    return {
        "allow_origins": exact,
        "allow_origin_regex": "|".join(origin_pattern_to_regex(p) for p in patterns) or None,
        "allow_methods": list(ALLOWED_METHODS),
        "allow_headers": list(ALLOWED_HEADERS),
        "allow_credentials": True,
        "max_age": security.cors.max_age,
    }


def is_public_path(path: str, public_paths: Optional[Iterable[str]] = None) -> bool:
    """路径是否属于免认证前缀（按路径段匹配，/healthz 不匹配 /health）"""
    prefixes = settings.security.public_paths if public_paths is None else public_paths
    for prefix in prefixes:
        prefix = prefix.rstrip("/") or "/"
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False
