"""
Profile Routes

GET    /profile/notifications - List my notifications (student)
DELETE /profile/notifications/{index} - Dismiss one notification (student)
POST   /profile/notifications/read-all - Dismiss all notifications (student)
POST   /profile/company/logo - Upload company logo (company)
GET    /profile/{role} - Get own profile
PUT    /profile/{role} - Update own profile
"""

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel, ValidationError as PydanticValidationError
from typing import Any, Dict, List, Type, Union

from app.core.auth import get_current_user, get_current_student, get_current_company
from app.core.errors import ForbiddenError, ValidationError
from app.services.mongo_service import CompanyStore, StudentStore, serialize_doc
from app.services.notification_service import get_notification_service
from app.utils.file_upload import save_logo, remove_upload
from app.schemas.schemas import (
    CompanyResponse, CompanyUpdate, MessageResponse, NotificationsResponse,
    StudentResponse, StudentUpdate, UserRole
)

router = APIRouter(prefix="/profile", tags=["Profile"])


# ============================================================
# NOTIFICATIONS
# ============================================================

@router.get("/notifications", response_model=List[str])
async def list_notifications(student: dict = Depends(get_current_student)):
    """Notifications in the order they were received."""
    return get_notification_service().list(student["id"])


@router.post("/notifications/read-all", response_model=MessageResponse)
async def dismiss_all_notifications(student: dict = Depends(get_current_student)):
    get_notification_service().dismiss_all(student["id"])
    return MessageResponse(message="All notifications marked as read")


@router.delete("/notifications/{index}", response_model=NotificationsResponse)
async def dismiss_notification(index: int, student: dict = Depends(get_current_student)):
    """Dismiss the notification at a position of the current list."""
    remaining = get_notification_service().dismiss(student["id"], index)
    return NotificationsResponse(message="Notification marked as read", notifications=remaining)


# ============================================================
# PROFILES
# ============================================================

@router.post("/company/logo", response_model=CompanyResponse)
async def upload_logo(file: UploadFile = File(...), company: dict = Depends(get_current_company)):
    """Replace the company logo."""
    store = CompanyStore()
    previous = store.get_or_404(company["id"]).get("logo")
    logo_path = await save_logo(file)
    updated = store.update_profile(company["id"], {"logo": logo_path})
    remove_upload(previous)
    return CompanyResponse(**serialize_doc(updated))


@router.get("/{role}", response_model=Union[StudentResponse, CompanyResponse])
async def get_profile(role: str, user: dict = Depends(get_current_user)):
    """Own profile; role must match the token's role."""
    role = _checked_role(role, user)
    if role == UserRole.student:
        return StudentResponse(**serialize_doc(StudentStore().get_or_404(user["id"])))
    return CompanyResponse(**serialize_doc(CompanyStore().get_or_404(user["id"])))


@router.put("/{role}", response_model=Union[StudentResponse, CompanyResponse])
async def update_profile(role: str, body: dict, user: dict = Depends(get_current_user)):
    """Update own profile. Only provided fields are updated."""
    role = _checked_role(role, user)
    if role == UserRole.student:
        fields = _parse(StudentUpdate, body)
        return StudentResponse(**serialize_doc(StudentStore().update_profile(user["id"], fields)))

    fields = _parse(CompanyUpdate, body)
    return CompanyResponse(**serialize_doc(CompanyStore().update_profile(user["id"], fields)))


def _checked_role(role: str, user: dict) -> UserRole:
    try:
        parsed = UserRole(role)
    except ValueError:
        raise ValidationError("Invalid role")
    if parsed.value != user["role"]:
        raise ForbiddenError("You can only access your own profile")
    return parsed


def _parse(model: Type[BaseModel], body: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a partial update against the role's schema."""
    try:
        fields = model.model_validate(body).model_dump(exclude_unset=True, mode="json")
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid profile update: {e.errors()[0]['msg']}")
    if not fields:
        raise ValidationError("No fields to update")
    return fields
