"""
Opportunity Search Service - turns optional query parameters into a filter.

Two modes:
1. search=<text>: every other parameter is ignored; matches a
   case-insensitive substring of the title OR of the owning company's name.
2. otherwise: the given parameters are ANDed together.

Both modes return postings newest first, each with a company summary.
"""

import re
from dataclasses import dataclass
from typing import Optional, List, Dict, Any

from app.services.mongo_service import (
    CompanyStore,
    OpportunityStore,
    serialize_doc,
    utcnow,
)


def split_csv(value: Optional[str]) -> List[str]:
    """'a, b,,c' -> ['a', 'b', 'c']"""
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def contains_pattern(text: str) -> Dict[str, str]:
    """Case-insensitive substring match, with regex metacharacters escaped."""
    return {"$regex": re.escape(text), "$options": "i"}


def exact_pattern(text: str) -> Dict[str, str]:
    """Case-insensitive whole-value match on the trimmed text."""
    return {"$regex": f"^{re.escape(text.strip())}$", "$options": "i"}


@dataclass
class OpportunityFilters:
    """Query parameters recognised by GET /opportunities."""
    category: Optional[str] = None
    status: Optional[str] = None
    experience_level: Optional[str] = None
    location: Optional[str] = None
    opportunity_type: Optional[str] = None
    tags: Optional[str] = None
    skills: Optional[str] = None
    min_salary: Optional[float] = None
    max_salary: Optional[float] = None
    search: Optional[str] = None


def build_opportunity_query(filters: OpportunityFilters) -> Dict[str, Any]:
    """
    Build the conjunctive Mongo filter (search mode is handled separately).

    Salary bounds:
    minSalary narrows salary.min from below, maxSalary narrows salary.max
    from above. It is not an overlap test.
    """
    query: Dict[str, Any] = {}

    if filters.category:
        query["category"] = filters.category
    if filters.status:
        query["status"] = filters.status
    if filters.experience_level:
        query["experience_level"] = filters.experience_level
    if filters.location and filters.location.strip():
        query["location"] = exact_pattern(filters.location)

    types = [t.lower() for t in split_csv(filters.opportunity_type)]
    if types:
        query["opportunity_type"] = {"$in": types}

    tags = split_csv(filters.tags) + split_csv(filters.skills)
    if tags:
        query["tags"] = {"$in": list(dict.fromkeys(tags))}

    if filters.min_salary is not None:
        query["salary.min"] = {"$gte": filters.min_salary}
    if filters.max_salary is not None:
        query["salary.max"] = {"$lte": filters.max_salary}

    return query


def is_expired(opportunity: dict) -> bool:
    deadline = opportunity.get("deadline")
    return opportunity.get("status") == "expired" or (deadline is not None and deadline < utcnow())


class OpportunitySearchService:
    """Runs searches against the opportunity collection."""

    def __init__(self):
        self.opportunities = OpportunityStore()
        self.companies = CompanyStore()

    def search(self, filters: OpportunityFilters) -> List[dict]:
        if filters.search and filters.search.strip():
            docs = self._text_search(filters.search.strip())
        else:
            docs = self.opportunities.find(build_opportunity_query(filters))
        return self.with_companies(docs)

    def _text_search(self, text: str) -> List[dict]:
        pattern = contains_pattern(text)
        company_ids = self.companies.find_ids_by_name(pattern)
        clauses: List[Dict[str, Any]] = [{"title": pattern}]
        if company_ids:
            clauses.append({"company": {"$in": company_ids}})
        return self.opportunities.find({"$or": clauses})

    def with_companies(self, docs: List[dict]) -> List[dict]:
        """Serialize postings and attach each owner's summary."""
        companies = self.companies.find_by_ids({doc["company"] for doc in docs})
        return [opportunity_to_dict(doc, companies.get(doc["company"])) for doc in docs]


def company_summary(company: Optional[dict]) -> Optional[dict]:
    if company is None:
        return None
    return {
        "id": str(company["_id"]),
        "name": company.get("name"),
        "logo": company.get("logo"),
        "industry": company.get("industry"),
        "location": company.get("location"),
    }


def opportunity_to_dict(doc: dict, company: Optional[dict] = None) -> dict:
    """Serialized posting shaped for OpportunityResponse."""
    out = serialize_doc(doc)
    out["company_id"] = out.pop("company")
    out["company"] = company_summary(company)
    out["is_expired"] = is_expired(doc)
    return out


def get_search_service() -> OpportunitySearchService:
    return OpportunitySearchService()
