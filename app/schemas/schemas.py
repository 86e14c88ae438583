"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional, List, Any, Dict
from datetime import date as dt_date, datetime
from enum import Enum


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, Enum):
    student = "student"
    company = "company"


class ApplicationStatus(str, Enum):
    pending = "pending"
    under_review = "under_review"
    interview = "interview"
    accepted = "accepted"
    rejected = "rejected"
    withdrawn = "withdrawn"


# Historical spellings still found in stored documents
LEGACY_STATUS_ALIASES = {
    "new": ApplicationStatus.pending.value,
    "reviewing": ApplicationStatus.under_review.value,
    "interview_scheduled": ApplicationStatus.interview.value,
}


def normalize_status(value: Any) -> Any:
    """Map a legacy status alias to its canonical value; other values pass through."""
    if isinstance(value, ApplicationStatus):
        return value.value
    if isinstance(value, str):
        cleaned = value.strip().lower()
        return LEGACY_STATUS_ALIASES.get(cleaned, cleaned)
    return value


class InterviewType(str, Enum):
    phone = "phone"
    video = "video"
    onsite = "onsite"
    virtual = "virtual"
    in_person = "in-person"


class InterviewStatus(str, Enum):
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"


class OpportunityStatus(str, Enum):
    draft = "draft"
    active = "active"
    closed = "closed"
    expired = "expired"


class Category(str, Enum):
    software = "software"
    data = "data"
    design = "design"
    marketing = "marketing"
    business = "business"
    other = "other"


class OpportunityType(str, Enum):
    internship = "internship"
    externship = "externship"
    freelance = "freelance"
    part_time = "part-time"
    full_time = "full-time"
    remote = "remote"
    contract = "contract"
    research = "research"
    apprenticeship = "apprenticeship"


class ExperienceLevel(str, Enum):
    entry = "entry"
    intermediate = "intermediate"
    senior = "senior"
    expert = "expert"


# ============================================================
# AUTH SCHEMAS
# ============================================================

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    email: EmailStr
    password: str = Field(..., min_length=6)

class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    role: UserRole

class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: UserRole

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ============================================================
# STUDENT SCHEMAS
# ============================================================

class StudentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    phone: Optional[str] = None
    title: Optional[str] = None
    location: Optional[str] = None
    profile_image: Optional[str] = None
    skills: Optional[List[str]] = None
    experience_level: Optional[ExperienceLevel] = None
    education: Optional[List[Dict[str, Any]]] = None
    experience: Optional[List[Dict[str, Any]]] = None

class StudentResponse(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    title: Optional[str] = None
    location: Optional[str] = None
    profile_image: Optional[str] = None
    skills: List[str] = []
    experience_level: ExperienceLevel = ExperienceLevel.entry
    education: List[Dict[str, Any]] = []
    experience: List[Dict[str, Any]] = []
    saved_opportunities: List[str] = []
    applications: List[str] = []
    notifications: List[str] = []
    created_at: Optional[datetime] = None

class StudentSummary(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    location: Optional[str] = None
    skills: List[str] = []
    experience_level: Optional[str] = None


# ============================================================
# COMPANY SCHEMAS
# ============================================================

class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    industry: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    contact_email: Optional[EmailStr] = None

class CompanyResponse(BaseModel):
    id: str
    name: str
    email: str
    industry: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    contact_email: Optional[str] = None
    logo: Optional[str] = None
    opportunities: List[str] = []
    created_at: Optional[datetime] = None

class CompanySummary(BaseModel):
    id: str
    name: str
    logo: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None


# ============================================================
# OPPORTUNITY SCHEMAS
# ============================================================

class SalaryRange(BaseModel):
    min: Optional[float] = Field(None, ge=0)
    max: Optional[float] = Field(None, ge=0)
    currency: str = "USD"

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("salary.min cannot exceed salary.max")
        return self

class OpportunityCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: Category
    opportunity_type: OpportunityType
    experience_level: ExperienceLevel = ExperienceLevel.entry
    requirements: List[str] = []
    location: Optional[str] = None
    tags: List[str] = []
    salary: SalaryRange = SalaryRange()
    duration: Optional[str] = None
    deadline: Optional[datetime] = None
    status: OpportunityStatus = OpportunityStatus.active

class OpportunityUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[Category] = None
    opportunity_type: Optional[OpportunityType] = None
    experience_level: Optional[ExperienceLevel] = None
    requirements: Optional[List[str]] = None
    location: Optional[str] = None
    tags: Optional[List[str]] = None
    salary: Optional[SalaryRange] = None
    duration: Optional[str] = None
    deadline: Optional[datetime] = None
    status: Optional[OpportunityStatus] = None

class OpportunityAnalytics(BaseModel):
    views: int = 0
    applications: int = 0
    interviews: int = 0
    hires: int = 0

class OpportunityResponse(BaseModel):
    id: str
    title: str
    description: str
    company: Optional[CompanySummary] = None
    company_id: str
    category: str
    opportunity_type: str
    experience_level: str = ExperienceLevel.entry.value
    requirements: List[str] = []
    location: Optional[str] = None
    tags: List[str] = []
    salary: SalaryRange = SalaryRange()
    duration: Optional[str] = None
    deadline: Optional[datetime] = None
    status: str
    is_expired: bool = False
    applicants: List[str] = []
    analytics: OpportunityAnalytics = OpportunityAnalytics()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class CompanyOpportunityStats(BaseModel):
    active_postings: int
    total_applications: int
    interviews_scheduled: int
    accepted_applications: int
    rejected_applications: int

class CompanyOpportunitiesResponse(BaseModel):
    opportunities: List[OpportunityResponse]
    stats: CompanyOpportunityStats


# ============================================================
# APPLICATION SCHEMAS
# ============================================================

class ApplicationStatusUpdate(BaseModel):
    status: ApplicationStatus

    @field_validator("status", mode="before")
    @classmethod
    def canonical_status(cls, value):
        return normalize_status(value)

class InterviewSchedule(BaseModel):
    date: dt_date
    time: str = Field(..., min_length=1)
    type: InterviewType
    link: Optional[str] = None
    notes: Optional[str] = None
    interviewer: Optional[str] = None

class InterviewRequest(BaseModel):
    interview: InterviewSchedule

class InterviewResponse(BaseModel):
    date: Optional[str] = None
    time: Optional[str] = None
    type: Optional[str] = None
    link: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    feedback: Optional[str] = None
    interviewer: Optional[str] = None

class InterviewRound(BaseModel):
    round: int
    date: str
    time: str
    type: str
    link: Optional[str] = None
    status: str = InterviewStatus.scheduled.value
    feedback: Optional[str] = None
    interviewer: Optional[str] = None

class NoteCreate(BaseModel):
    note: str = Field(..., min_length=1, max_length=5000)

class NoteResponse(BaseModel):
    text: str
    added_by: str
    date: datetime

class OpportunitySummary(BaseModel):
    id: str
    title: str
    status: str
    location: Optional[str] = None
    opportunity_type: Optional[str] = None
    company: Optional[CompanySummary] = None

class ApplicationResponse(BaseModel):
    id: str
    student: str
    opportunity: str
    status: ApplicationStatus
    resume: Optional[str] = None
    cover_letter: Optional[str] = None
    interview: Optional[InterviewResponse] = None
    interview_rounds: List[InterviewRound] = []
    notes: List[NoteResponse] = []
    last_updated_by: Optional[str] = None
    last_status_change: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    opportunity_details: Optional[OpportunitySummary] = None
    student_details: Optional[StudentSummary] = None

    @field_validator("status", mode="before")
    @classmethod
    def canonical_status(cls, value):
        return normalize_status(value)

    @field_validator("interview", mode="before")
    @classmethod
    def empty_interview(cls, value):
        # Applications without a scheduled interview carry {}
        return value or None


# ============================================================
# NOTIFICATION SCHEMAS
# ============================================================

class NotificationsResponse(BaseModel):
    message: str
    notifications: List[str]


# ============================================================
# GENERIC SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True
