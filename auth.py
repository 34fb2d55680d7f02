"""
Authentication

Password hashing, JWT issue/verify and the middleware that gates every
request not covered by the allow-list. Only tokens carrying ``is_admin`` are
accepted on protected routes; any other valid token is treated as revoked.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Iterable, NamedTuple, Optional, FrozenSet, List

import bcrypt
import jwt
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

import config
from errors import BadRequestError, UnauthorizedError, error_response

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# bcrypt rejects longer inputs
MAX_PASSWORD_BYTES = 72


# ----------------------- Passwords -----------------------
def hash_password(password: str) -> str:
    encoded = password.encode()
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise BadRequestError(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # malformed stored hash
        return False


# ----------------------- Tokens -----------------------
def create_token(payload: dict) -> str:
    exp = datetime.now(timezone.utc) + config.TOKEN_TTL
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_token(token: str) -> dict:
    """Raises ExpiredSignatureError / InvalidTokenError from PyJWT."""
    return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])


def is_revoked(payload: dict) -> bool:
    return not payload.get("is_admin")


# ----------------------- Allow-list -----------------------
class AllowRule(NamedTuple):
    pattern: re.Pattern
    methods: Optional[FrozenSet[str]] = None

    def matches(self, path: str, method: str) -> bool:
        if self.methods is not None and method.upper() not in self.methods:
            return False
        return self.pattern.fullmatch(path) is not None


def rule(pattern: str, methods: Optional[Iterable[str]] = None) -> AllowRule:
    return AllowRule(re.compile(pattern), frozenset(m.upper() for m in methods) if methods else None)


def default_allow_list(api: str = config.API_URL) -> List[AllowRule]:
    read_only = ("GET", "OPTIONS")
    api = re.escape(api)
    return [
        rule(r"/api-docs.*", read_only),
        rule(re.escape(config.UPLOAD_URL) + r".*", read_only),
        rule(api + r"/products.*", read_only),
        rule(api + r"/categories.*", read_only),
        rule(api + r"/users/login"),
        rule(api + r"/users/register"),
        rule(r"/", ("GET",)),
        rule(r"/test", ("GET",)),
    ]


def is_allowed(path: str, method: str, allow_list: Iterable[AllowRule]) -> bool:
    return any(r.matches(path, method) for r in allow_list)


async def bearer_token(request: Request) -> Optional[str]:
    credentials: Optional[HTTPAuthorizationCredentials] = await security(request)
    return credentials.credentials if credentials else None


# ----------------------- Middleware -----------------------
class JWTAuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, allow_list: Optional[List[AllowRule]] = None):
        super().__init__(app)
        self.allow_list = allow_list if allow_list is not None else default_allow_list()

    async def dispatch(self, request: Request, call_next):
        if is_allowed(request.url.path, request.method, self.allow_list):
            return await call_next(request)

        token = await bearer_token(request)
        if token is None:
            return error_response(UnauthorizedError())
        try:
            payload = decode_token(token)
        except jwt.PyJWTError as exc:
            logger.info("Rejected token for %s %s: %s", request.method, request.url.path, exc)
            return error_response(exc)
        if is_revoked(payload):
            logger.info("Rejected non-admin token for %s %s", request.method, request.url.path)
            return error_response(UnauthorizedError())

        request.state.token = payload
        return await call_next(request)
