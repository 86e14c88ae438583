"""
Opportunity Routes

GET    /opportunities - Search/filter postings (public)
GET    /opportunities/company - My postings with dashboard stats (company)
GET    /opportunities/saved - My saved postings (student)
GET    /opportunities/{id} - Posting details, counts a view
POST   /opportunities - Create posting (company)
PUT    /opportunities/{id} - Update posting (owning company)
DELETE /opportunities/{id} - Delete posting (owning company)
POST   /opportunities/save/{id} - Save posting (student)
POST   /opportunities/unsave/{id} - Unsave posting (student)
"""

import logging
from datetime import datetime
from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from app.core.auth import get_current_user, get_current_student, get_current_company
from app.core.errors import NotFoundError, ValidationError
from app.services.application_service import get_application_service
from app.services.mongo_service import (
    CompanyStore, OpportunityStore, StudentStore, to_naive_utc, to_object_id, utcnow
)
from app.services.search_service import OpportunityFilters, get_search_service, opportunity_to_dict
from app.schemas.schemas import (
    CompanyOpportunitiesResponse, MessageResponse, OpportunityCreate,
    OpportunityResponse, OpportunityUpdate
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/opportunities", tags=["Opportunities"])


def _check_deadline(deadline: Optional[datetime]) -> Optional[datetime]:
    deadline = to_naive_utc(deadline)
    if deadline is not None and deadline < utcnow():
        raise ValidationError("Deadline must be in the future")
    return deadline


@router.get("", response_model=List[OpportunityResponse])
async def list_opportunities(
    category: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Title or company name; overrides every other filter"),
    opportunity_type: Optional[str] = Query(None, alias="opportunityType", description="Comma-separated"),
    location: Optional[str] = Query(None, description="Exact, case-insensitive"),
    skills: Optional[str] = Query(None, description="Comma-separated tags"),
    tags: Optional[str] = Query(None, description="Comma-separated tags"),
    min_salary: Optional[float] = Query(None, alias="minSalary"),
    max_salary: Optional[float] = Query(None, alias="maxSalary"),
    experience_level: Optional[str] = Query(None, alias="experienceLevel"),
):
    """Search postings. Newest first."""
    filters = OpportunityFilters(
        category=category, status=status, experience_level=experience_level,
        location=location, opportunity_type=opportunity_type, tags=tags, skills=skills,
        min_salary=min_salary, max_salary=max_salary, search=search
    )
    return get_search_service().search(filters)


@router.get("/company", response_model=CompanyOpportunitiesResponse)
async def company_opportunities(
    status: Optional[str] = Query(None),
    opportunity_type: Optional[str] = Query(None, alias="opportunityType"),
    company: dict = Depends(get_current_company)
):
    """This company's postings plus application counters."""
    query = {"company": to_object_id(company["id"], "Company")}
    if status:
        query["status"] = status
    if opportunity_type:
        query["opportunity_type"] = opportunity_type

    docs = OpportunityStore().find(query)
    stats = get_application_service().company_stats(docs)
    return {"opportunities": get_search_service().with_companies(docs), "stats": stats}


@router.get("/saved", response_model=List[OpportunityResponse])
async def saved_opportunities(student: dict = Depends(get_current_student)):
    """Postings the student bookmarked that still exist."""
    saved = StudentStore().get_or_404(student["id"]).get("saved_opportunities") or []
    docs = OpportunityStore().find({"_id": {"$in": saved}})
    return get_search_service().with_companies(docs)


@router.get("/{opportunity_id}", response_model=OpportunityResponse)
async def get_opportunity(opportunity_id: str, user: dict = Depends(get_current_user)):
    """Posting details. Each read counts as a view."""
    store = OpportunityStore()
    doc = store.get_or_404(opportunity_id)
    store.increment(doc["_id"], "views")
    doc = store.get_or_404(opportunity_id)
    company = CompanyStore().get(doc["company"])
    return opportunity_to_dict(doc, company)


@router.post("", response_model=OpportunityResponse, status_code=201)
async def create_opportunity(body: OpportunityCreate, company: dict = Depends(get_current_company)):
    """Create a posting. Only companies can create postings."""
    data = body.model_dump(mode="json")
    data["deadline"] = _check_deadline(body.deadline)

    company_id = to_object_id(company["id"], "Company")
    doc = OpportunityStore().create(company_id, data)
    CompanyStore().add_opportunity(company_id, doc["_id"])
    logger.info("opportunity %s created by company %s", doc["_id"], company_id)

    return opportunity_to_dict(doc, CompanyStore().get(company_id))


@router.put("/{opportunity_id}", response_model=OpportunityResponse)
async def update_opportunity(
    opportunity_id: str,
    body: OpportunityUpdate,
    company: dict = Depends(get_current_company)
):
    """Update a posting. Only the owning company can update."""
    fields = body.model_dump(exclude_unset=True, mode="json")
    if "deadline" in fields:
        fields["deadline"] = _check_deadline(body.deadline)
    if not fields:
        raise ValidationError("No fields to update")

    company_id = to_object_id(company["id"], "Company")
    doc = OpportunityStore().update_owned(opportunity_id, company_id, fields)
    if doc is None:
        raise NotFoundError("Opportunity", opportunity_id)
    return opportunity_to_dict(doc, CompanyStore().get(company_id))


@router.delete("/{opportunity_id}", response_model=MessageResponse)
async def delete_opportunity(opportunity_id: str, company: dict = Depends(get_current_company)):
    """Delete a posting with its applications; drop it from the company and every saved list."""
    company_id = to_object_id(company["id"], "Company")
    doc = OpportunityStore().delete_owned(opportunity_id, company_id)
    if doc is None:
        raise NotFoundError("Opportunity", opportunity_id)

    CompanyStore().remove_opportunity(company_id, doc["_id"])
    StudentStore().remove_saved_everywhere(doc["_id"])
    get_application_service().delete_for_opportunity(doc["_id"])
    logger.info("opportunity %s deleted by company %s", doc["_id"], company_id)
    return MessageResponse(message="Deleted")


@router.post("/save/{opportunity_id}", response_model=MessageResponse)
async def save_opportunity(opportunity_id: str, student: dict = Depends(get_current_student)):
    """Bookmark an active posting."""
    doc = OpportunityStore().get_or_404(opportunity_id)
    if doc.get("status") != "active":
        raise ValidationError("Cannot save inactive opportunity")
    StudentStore().save_opportunity(student["id"], doc["_id"])
    return MessageResponse(message="Saved")


@router.post("/unsave/{opportunity_id}", response_model=MessageResponse)
async def unsave_opportunity(opportunity_id: str, student: dict = Depends(get_current_student)):
    StudentStore().unsave_opportunity(student["id"], to_object_id(opportunity_id, "Opportunity"))
    return MessageResponse(message="Unsaved")
