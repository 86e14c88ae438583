"""
MongoDB Service - CRUD operations for the hub's collections.

Collections in this database:
1. students       - Student accounts, saved opportunities, application ids, inbox
2. companies      - Company accounts and their opportunity ids
3. opportunities  - Postings with applicant list and analytics counters
4. applications   - One document per student candidacy

Each store wraps one collection. Every write here touches a single document,
so each call is atomic on its own; operations spanning documents are composed
in the service layer.
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Iterable
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection

from app.core.errors import NotFoundError
from app.db.mongodb import get_collection, COLLECTIONS


# ============================================================
# HELPERS: ids, timestamps, JSON serialization
# ============================================================

def utcnow() -> datetime:
    """Naive UTC timestamp, the form pymongo hands back from storage."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC so it compares with stored values."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Any, resource: str = "Document") -> ObjectId:
    """Parse an id from a path/token; malformed ids are reported as missing."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise NotFoundError(resource, str(value))


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: dict) -> dict:
    """Convert MongoDB document to JSON-serializable dict (_id becomes id)."""
    if doc is None:
        return None
    out = {}
    for key, value in doc.items():
        if key == "_id":
            out["id"] = str(value)
        else:
            out[key] = _serialize_value(value)
    return out


# ============================================================
# STUDENTS COLLECTION
# ============================================================

class StudentStore:
    """
    Student accounts.
    applications/notifications/saved_opportunities are mirror lists kept
    in step by the service layer.
    """

    PROFILE_FIELDS = {
        "name", "phone", "title", "location", "profile_image", "skills",
        "experience_level", "education", "experience"
    }

    def __init__(self):
        self.collection: Collection = get_collection(COLLECTIONS["students"])

    def create(self, name: str, email: str, password_hash: str) -> dict:
        now = utcnow()
        doc = {
            "name": name,
            "email": email,
            "password": password_hash,
            "phone": None,
            "title": None,
            "location": None,
            "profile_image": None,
            "skills": [],
            "experience_level": "entry",
            "education": [],
            "experience": [],
            "saved_opportunities": [],
            "applications": [],
            "notifications": [],
            "created_at": now,
            "updated_at": now
        }
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def get(self, student_id: Any) -> Optional[dict]:
        return self.collection.find_one({"_id": to_object_id(student_id, "Student")})

    def get_or_404(self, student_id: Any) -> dict:
        doc = self.get(student_id)
        if doc is None:
            raise NotFoundError("Student", str(student_id))
        return doc

    def get_by_email(self, email: str) -> Optional[dict]:
        return self.collection.find_one({"email": email})

    def find_by_ids(self, ids: Iterable[ObjectId]) -> Dict[ObjectId, dict]:
        """Fetch many students at once, keyed by _id."""
        cursor = self.collection.find({"_id": {"$in": list(ids)}}, {"password": 0})
        return {doc["_id"]: doc for doc in cursor}

    def update_profile(self, student_id: Any, fields: Dict[str, Any]) -> Optional[dict]:
        """Update whitelisted profile fields only."""
        updates = {k: v for k, v in fields.items() if k in self.PROFILE_FIELDS}
        updates["updated_at"] = utcnow()
        return self.collection.find_one_and_update(
            {"_id": to_object_id(student_id, "Student")},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )

    def add_application(self, student_id: ObjectId, application_id: ObjectId) -> bool:
        result = self.collection.update_one(
            {"_id": student_id},
            {"$addToSet": {"applications": application_id}}
        )
        return result.matched_count > 0

    def remove_application(self, student_id: ObjectId, application_id: ObjectId) -> bool:
        result = self.collection.update_one(
            {"_id": student_id},
            {"$pull": {"applications": application_id}}
        )
        return result.matched_count > 0

    def save_opportunity(self, student_id: Any, opportunity_id: ObjectId) -> bool:
        result = self.collection.update_one(
            {"_id": to_object_id(student_id, "Student")},
            {"$addToSet": {"saved_opportunities": opportunity_id}}
        )
        return result.matched_count > 0

    def unsave_opportunity(self, student_id: Any, opportunity_id: ObjectId) -> bool:
        result = self.collection.update_one(
            {"_id": to_object_id(student_id, "Student")},
            {"$pull": {"saved_opportunities": opportunity_id}}
        )
        return result.matched_count > 0

    def remove_saved_everywhere(self, opportunity_id: ObjectId) -> int:
        """Drop a deleted opportunity from every student's saved list."""
        result = self.collection.update_many(
            {"saved_opportunities": opportunity_id},
            {"$pull": {"saved_opportunities": opportunity_id}}
        )
        return result.modified_count

    def set_applications(self, student_id: ObjectId, application_ids: List[ObjectId]) -> bool:
        result = self.collection.update_one(
            {"_id": student_id},
            {"$set": {"applications": application_ids}}
        )
        return result.matched_count > 0

    def remove_applications_everywhere(self, application_ids: List[ObjectId]) -> int:
        """Drop deleted applications from every student that lists them."""
        if not application_ids:
            return 0
        result = self.collection.update_many(
            {"applications": {"$in": application_ids}},
            {"$pullAll": {"applications": application_ids}}
        )
        return result.modified_count

    def all_ids(self) -> List[ObjectId]:
        return [doc["_id"] for doc in self.collection.find({}, {"_id": 1})]


# ============================================================
# COMPANIES COLLECTION
# ============================================================

class CompanyStore:
    """Company accounts and the ids of the opportunities they posted."""

    PROFILE_FIELDS = {"name", "industry", "location", "description", "website", "contact_email", "logo"}

    def __init__(self):
        self.collection: Collection = get_collection(COLLECTIONS["companies"])

    def create(self, name: str, email: str, password_hash: str) -> dict:
        now = utcnow()
        doc = {
            "name": name,
            "email": email,
            "password": password_hash,
            "industry": None,
            "location": None,
            "description": None,
            "website": None,
            "contact_email": None,
            "logo": None,
            "opportunities": [],
            "created_at": now,
            "updated_at": now
        }
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def get(self, company_id: Any) -> Optional[dict]:
        return self.collection.find_one({"_id": to_object_id(company_id, "Company")})

    def get_or_404(self, company_id: Any) -> dict:
        doc = self.get(company_id)
        if doc is None:
            raise NotFoundError("Company", str(company_id))
        return doc

    def get_by_email(self, email: str) -> Optional[dict]:
        return self.collection.find_one({"email": email})

    def find_by_ids(self, ids: Iterable[ObjectId]) -> Dict[ObjectId, dict]:
        cursor = self.collection.find({"_id": {"$in": list(ids)}}, {"password": 0})
        return {doc["_id"]: doc for doc in cursor}

    def find_ids_by_name(self, pattern: Dict[str, str]) -> List[ObjectId]:
        """Ids of companies whose name matches a $regex filter."""
        return [doc["_id"] for doc in self.collection.find({"name": pattern}, {"_id": 1})]

    def update_profile(self, company_id: Any, fields: Dict[str, Any]) -> Optional[dict]:
        updates = {k: v for k, v in fields.items() if k in self.PROFILE_FIELDS}
        updates["updated_at"] = utcnow()
        return self.collection.find_one_and_update(
            {"_id": to_object_id(company_id, "Company")},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )

    def add_opportunity(self, company_id: ObjectId, opportunity_id: ObjectId) -> bool:
        result = self.collection.update_one(
            {"_id": company_id},
            {"$addToSet": {"opportunities": opportunity_id}}
        )
        return result.matched_count > 0

    def remove_opportunity(self, company_id: ObjectId, opportunity_id: ObjectId) -> bool:
        result = self.collection.update_one(
            {"_id": company_id},
            {"$pull": {"opportunities": opportunity_id}}
        )
        return result.matched_count > 0


# ============================================================
# OPPORTUNITIES COLLECTION
# ============================================================

class OpportunityStore:
    """
    Postings owned by one company.
    applicants mirrors the non-withdrawn applications against the posting.
    """

    ANALYTICS_COUNTERS = ("views", "applications", "interviews", "hires")

    def __init__(self):
        self.collection: Collection = get_collection(COLLECTIONS["opportunities"])

    def create(self, company_id: ObjectId, data: Dict[str, Any]) -> dict:
        now = utcnow()
        doc = dict(data)
        doc.update({
            "company": company_id,
            "applicants": [],
            "analytics": {counter: 0 for counter in self.ANALYTICS_COUNTERS},
            "last_updated_by": company_id,
            "created_at": now,
            "updated_at": now
        })
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def get(self, opportunity_id: Any) -> Optional[dict]:
        return self.collection.find_one({"_id": to_object_id(opportunity_id, "Opportunity")})

    def get_or_404(self, opportunity_id: Any) -> dict:
        doc = self.get(opportunity_id)
        if doc is None:
            raise NotFoundError("Opportunity", str(opportunity_id))
        return doc

    def find(self, query: Dict[str, Any]) -> List[dict]:
        """Run a filter, newest first."""
        return list(self.collection.find(query).sort("created_at", DESCENDING))

    def find_by_ids(self, ids: Iterable[ObjectId]) -> Dict[ObjectId, dict]:
        cursor = self.collection.find({"_id": {"$in": list(ids)}})
        return {doc["_id"]: doc for doc in cursor}

    def update_owned(self, opportunity_id: Any, company_id: ObjectId, fields: Dict[str, Any]) -> Optional[dict]:
        """Update a posting only if company_id owns it; None otherwise."""
        updates = dict(fields)
        updates["last_updated_by"] = company_id
        updates["updated_at"] = utcnow()
        return self.collection.find_one_and_update(
            {"_id": to_object_id(opportunity_id, "Opportunity"), "company": company_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )

    def delete_owned(self, opportunity_id: Any, company_id: ObjectId) -> Optional[dict]:
        return self.collection.find_one_and_delete(
            {"_id": to_object_id(opportunity_id, "Opportunity"), "company": company_id}
        )

    def add_applicant(self, opportunity_id: ObjectId, student_id: ObjectId) -> bool:
        result = self.collection.update_one(
            {"_id": opportunity_id},
            {"$addToSet": {"applicants": student_id}}
        )
        return result.matched_count > 0

    def remove_applicant(self, opportunity_id: ObjectId, student_id: ObjectId) -> bool:
        result = self.collection.update_one(
            {"_id": opportunity_id},
            {"$pull": {"applicants": student_id}}
        )
        return result.matched_count > 0

    def set_applicants(self, opportunity_id: ObjectId, student_ids: List[ObjectId]) -> bool:
        result = self.collection.update_one(
            {"_id": opportunity_id},
            {"$set": {"applicants": student_ids}}
        )
        return result.matched_count > 0

    def increment(self, opportunity_id: ObjectId, counter: str, amount: int = 1) -> bool:
        """Bump one analytics counter."""
        if counter not in self.ANALYTICS_COUNTERS:
            raise ValueError(f"Unknown analytics counter: {counter}")
        result = self.collection.update_one(
            {"_id": opportunity_id},
            {"$inc": {f"analytics.{counter}": amount}}
        )
        return result.matched_count > 0

    def all_ids(self) -> List[ObjectId]:
        return [doc["_id"] for doc in self.collection.find({}, {"_id": 1})]


# ============================================================
# APPLICATIONS COLLECTION
# ============================================================

class ApplicationStore:
    """Raw access to application documents; rules live in ApplicationService."""

    def __init__(self):
        self.collection: Collection = get_collection(COLLECTIONS["applications"])

    def insert(self, doc: Dict[str, Any]) -> dict:
        result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def get(self, application_id: Any) -> Optional[dict]:
        return self.collection.find_one({"_id": to_object_id(application_id, "Application")})

    def find_one_for_pair(self, student_id: ObjectId, opportunity_id: ObjectId) -> Optional[dict]:
        return self.collection.find_one({"student": student_id, "opportunity": opportunity_id})

    def find(self, query: Dict[str, Any]) -> List[dict]:
        """Run a filter, newest first."""
        return list(self.collection.find(query).sort("created_at", DESCENDING))

    def update(self, application_id: ObjectId, update: Dict[str, Any],
               expected_status: Optional[str] = None) -> Optional[dict]:
        """
        Apply a raw update document and return the new version.

        With expected_status the write only lands if the stored status is
        still that value; None is returned when it moved in the meantime.
        """
        query: Dict[str, Any] = {"_id": application_id}
        if expected_status is not None:
            query["status"] = expected_status
        return self.collection.find_one_and_update(
            query,
            update,
            return_document=ReturnDocument.AFTER
        )

    def distinct_students(self, query: Dict[str, Any]) -> List[ObjectId]:
        return list(self.collection.distinct("student", query))

    def ids_for_student(self, student_id: ObjectId) -> List[ObjectId]:
        """Every application id of one student, oldest first."""
        cursor = self.collection.find({"student": student_id}).sort("created_at", ASCENDING)
        return [doc["_id"] for doc in cursor]

    def delete_for_opportunity(self, opportunity_id: ObjectId) -> List[dict]:
        """Remove every application to a posting; returns the removed documents."""
        docs = list(self.collection.find({"opportunity": opportunity_id}))
        if docs:
            self.collection.delete_many({"_id": {"$in": [doc["_id"] for doc in docs]}})
        return docs

    def delete(self, application_id: ObjectId) -> bool:
        result = self.collection.delete_one({"_id": application_id})
        return result.deleted_count > 0
