import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from config import AppConfig, get_config
from errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

ROLE_SUPERADMIN = "superadmin"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)
bearer_scheme = HTTPBearer(auto_error=False)


class InvalidToken(Exception):
    pass


class Identity(BaseModel):
    subject_id: str
    role: str


# Credential helpers

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # stored value is not a recognised hash
        return False


def issue_token(subject_id: str, role: str, config: AppConfig, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=config.token_expire_days))
    to_encode = {"sub": str(subject_id), "role": role, "exp": expire}
    return jwt.encode(to_encode, config.jwt_secret, algorithm=config.jwt_algorithm)


def verify_token(token: str, config: AppConfig) -> Identity:
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except JWTError as exc:
        raise InvalidToken(str(exc)) from exc
    subject_id = payload.get("sub")
    role = payload.get("role")
    if not subject_id or not role:
        raise InvalidToken("Token is missing its subject or role")
    return Identity(subject_id=subject_id, role=role)


# Access-control gate

def require_role(role: Optional[str] = None):
    """Build a dependency that admits requests carrying a valid bearer token.

    The decoded identity is stored on `request.state.identity` and returned.
    When `role` is given, only that role and superadmin are let through.
    """

    def gate(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        config: AppConfig = Depends(get_config),
    ) -> Identity:
        if credentials is None:
            raise Unauthorized("No token, authorization denied")
        try:
            identity = verify_token(credentials.credentials, config)
        except InvalidToken as exc:
            logger.warning("Rejected token on %s: %s", request.url.path, exc)
            raise Unauthorized("Token is not valid")
        request.state.identity = identity
        if role and identity.role not in (role, ROLE_SUPERADMIN):
            raise Forbidden("Forbidden, insufficient rights")
        return identity

    return gate
