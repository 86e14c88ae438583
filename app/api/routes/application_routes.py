"""
Application Routes

POST   /applications/apply/{opportunity_id} - Apply (student, multipart: cover_letter, resume)
GET    /applications/student - My applications (student)
GET    /applications/company - Applications to my postings (company)
GET    /applications/{id} - One application (its student or owning company)
PUT    /applications/{id}/status - Set status (owning company)
PUT    /applications/{id}/interview - Schedule/reschedule interview (owning company)
PUT    /applications/{id}/withdraw-student - Withdraw (applying student)
DELETE /applications/{id} - Delete (applying student or owning company)
POST   /applications/company/applications/{id}/notes - Add review note (owning company)
"""

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from typing import List, Optional

from app.core.auth import get_current_user, get_current_student, get_current_company
from app.core.errors import APIError, PartialFailureError
from app.services.application_service import application_to_dict, get_application_service
from app.utils.file_upload import save_resume, remove_upload
from app.schemas.schemas import (
    ApplicationResponse, ApplicationStatusUpdate, InterviewRequest, NoteCreate, MessageResponse
)

router = APIRouter(prefix="/applications", tags=["Applications"])


@router.post("/apply/{opportunity_id}", response_model=ApplicationResponse, status_code=201)
async def apply(
    opportunity_id: str,
    cover_letter: Optional[str] = Form(None),
    resume: Optional[UploadFile] = File(None),
    student: dict = Depends(get_current_student)
):
    """Apply to an active opportunity. Students only, once per opportunity."""
    resume_path = await save_resume(resume)
    try:
        app = get_application_service().apply(student["id"], opportunity_id, cover_letter, resume_path)
    except PartialFailureError:
        # The application was stored and still references the resume
        raise
    except APIError:
        remove_upload(resume_path)
        raise
    return application_to_dict(app)


@router.get("/student", response_model=List[ApplicationResponse])
async def my_applications(student: dict = Depends(get_current_student)):
    """All applications of the current student, newest first."""
    return get_application_service().list_for_student(student["id"])


@router.get("/company", response_model=List[ApplicationResponse])
async def company_applications(
    opportunity_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    company: dict = Depends(get_current_company)
):
    """Applications received on this company's postings."""
    return get_application_service().list_for_company(company["id"], opportunity_id, status)


@router.post("/company/applications/{application_id}/notes", response_model=ApplicationResponse)
async def add_note(application_id: str, body: NoteCreate, company: dict = Depends(get_current_company)):
    """Append a review note to an application."""
    app = get_application_service().add_note(company["id"], application_id, body.note)
    return application_to_dict(app)


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(application_id: str, user: dict = Depends(get_current_user)):
    return get_application_service().get(user, application_id)


@router.put("/{application_id}/status", response_model=ApplicationResponse)
async def update_status(
    application_id: str,
    update: ApplicationStatusUpdate,
    company: dict = Depends(get_current_company)
):
    """Move an application along its lifecycle. Accepted/rejected notify the student."""
    app = get_application_service().set_status(company["id"], application_id, update.status.value)
    return application_to_dict(app)


@router.put("/{application_id}/interview", response_model=ApplicationResponse)
async def schedule_interview(
    application_id: str,
    body: InterviewRequest,
    company: dict = Depends(get_current_company)
):
    """Schedule or reschedule the interview; the student is notified."""
    app = get_application_service().schedule_interview(
        company["id"], application_id, body.interview.model_dump(mode="json")
    )
    return application_to_dict(app)


@router.put("/{application_id}/withdraw-student", response_model=ApplicationResponse)
async def withdraw(application_id: str, student: dict = Depends(get_current_student)):
    """Withdraw your own application. The record is kept as `withdrawn`."""
    app = get_application_service().withdraw(student["id"], application_id)
    return application_to_dict(app)


@router.delete("/{application_id}", response_model=MessageResponse)
async def delete_application(application_id: str, user: dict = Depends(get_current_user)):
    """Remove an application and every reference to it."""
    get_application_service().delete(user, application_id)
    return MessageResponse(message="Application deleted successfully")
