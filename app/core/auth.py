"""
Authentication Utility - JWT and Password handling.

Provides:
- Password hashing with bcrypt
- JWT token creation/verification (payload: sub = account id, role)
- FastAPI dependencies for protected routes
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import get_settings
from app.core.errors import ForbiddenError, NotFoundError, UnauthorizedError
from app.services.mongo_service import CompanyStore, StudentStore, to_object_id

settings = get_settings()

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer token extractor; missing header is reported as 401 below
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash password with bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def _load_account(role: str, account_id: str) -> Optional[dict]:
    if role == "student":
        return StudentStore().get(account_id)
    if role == "company":
        return CompanyStore().get(account_id)
    return None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> dict:
    """
    FastAPI dependency - Get current authenticated account.

    Usage:
        @router.get("/protected")
        async def route(user: dict = Depends(get_current_user)):
            return user
    """
    if credentials is None:
        raise UnauthorizedError("No token")

    payload = decode_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError()

    account_id = payload.get("sub")
    role = payload.get("role")
    if not account_id or role not in ("student", "company"):
        raise UnauthorizedError()

    # Malformed ids in a signed token are still just an invalid token
    try:
        to_object_id(account_id)
    except NotFoundError:
        raise UnauthorizedError()

    account = _load_account(role, account_id)
    if not account:
        raise UnauthorizedError("Account no longer exists")

    return {"id": str(account["_id"]), "role": role, "name": account.get("name"), "email": account.get("email")}


async def get_current_student(user: dict = Depends(get_current_user)) -> dict:
    """Dependency - Require student role."""
    if user["role"] != "student":
        raise ForbiddenError("Students only")
    return user


async def get_current_company(user: dict = Depends(get_current_user)) -> dict:
    """Dependency - Require company role."""
    if user["role"] != "company":
        raise ForbiddenError("Companies only")
    return user
