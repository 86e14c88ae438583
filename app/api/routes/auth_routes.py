"""
Authentication Routes

POST /auth/register/student - Register a student account
POST /auth/register/company - Register a company account
POST /auth/login - Login (student or company) and get JWT token
GET /auth/me - Get current account info
"""

from fastapi import APIRouter, Depends
from pymongo.errors import DuplicateKeyError

from app.core.auth import hash_password, verify_password, create_access_token, get_current_user
from app.core.errors import ConflictError, UnauthorizedError
from app.services.mongo_service import CompanyStore, StudentStore
from app.schemas.schemas import (
    RegisterRequest, LoginRequest, TokenResponse, UserResponse, UserRole
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _store_for(role: UserRole):
    return StudentStore() if role == UserRole.student else CompanyStore()


def _register(role: UserRole, request: RegisterRequest) -> UserResponse:
    store = _store_for(role)
    email = request.email.lower()
    if store.get_by_email(email):
        raise ConflictError(f"{role.value.capitalize()} already exists", code="EMAIL_TAKEN")

    try:
        doc = store.create(request.name, email, hash_password(request.password))
    except DuplicateKeyError:
        raise ConflictError(f"{role.value.capitalize()} already exists", code="EMAIL_TAKEN")

    return UserResponse(id=str(doc["_id"]), name=doc["name"], email=doc["email"], role=role)


@router.post("/register/student", response_model=UserResponse, status_code=201)
async def register_student(request: RegisterRequest):
    """Register a new student account. Login afterwards to get a token."""
    return _register(UserRole.student, request)


@router.post("/register/company", response_model=UserResponse, status_code=201)
async def register_company(request: RegisterRequest):
    """Register a new company account. Login afterwards to get a token."""
    return _register(UserRole.company, request)


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest):
    """
    Login and receive JWT access token.

    Include token in requests: Authorization: Bearer <token>
    """
    account = _store_for(request.role).get_by_email(request.email.lower())
    if not account or not verify_password(request.password, account["password"]):
        raise UnauthorizedError("Invalid email or password")

    token = create_access_token(data={"sub": str(account["_id"]), "role": request.role.value})
    return TokenResponse(
        access_token=token,
        user=UserResponse(id=str(account["_id"]), name=account["name"], email=account["email"], role=request.role)
    )


@router.get("/me", response_model=UserResponse)
async def get_me(user: dict = Depends(get_current_user)):
    """Get current authenticated account."""
    return UserResponse(**user)
