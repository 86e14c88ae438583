"""
Application Lifecycle Service.

Moves an application through

    pending -> under_review -> interview -> accepted | rejected

with `withdrawn` open to the applying student from any non-terminal status.
Each operation states who may call it; the caller's id comes from the
verified token.

CONSISTENCY:
The application document is the source of truth. Student.applications,
Opportunity.applicants and the student's inbox are mirrors written after the
application itself, one document at a time. Mirror writes are idempotent
($addToSet / $pull); if one fails the caller gets PartialFailureError and
reconcile_all() rebuilds both mirror lists from the applications collection.
"""

import logging
from typing import Optional, List, Dict, Any, Callable, Tuple

from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.config import get_settings
from app.core.errors import (
    ConflictError,
    DuplicateApplicationError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PartialFailureError,
    ValidationError,
)
from app.schemas.schemas import ApplicationStatus, InterviewStatus, LEGACY_STATUS_ALIASES, normalize_status
from app.services.mongo_service import (
    ApplicationStore,
    CompanyStore,
    OpportunityStore,
    StudentStore,
    serialize_doc,
    to_object_id,
    utcnow,
)
from app.services.notification_service import (
    MSG_ACCEPTED,
    MSG_INTERVIEW_SCHEDULED,
    MSG_REJECTED,
    NotificationService,
)
from app.services.search_service import company_summary, is_expired
from app.utils.file_upload import remove_upload

logger = logging.getLogger(__name__)

S = ApplicationStatus

TERMINAL_STATUSES = {S.accepted.value, S.rejected.value, S.withdrawn.value}

# Statuses a company may set directly
COMPANY_TARGETS = {S.under_review.value, S.interview.value, S.accepted.value, S.rejected.value}

ALLOWED_TRANSITIONS = {
    S.pending.value: {S.under_review.value, S.interview.value, S.rejected.value, S.withdrawn.value},
    S.under_review.value: {S.interview.value, S.rejected.value, S.withdrawn.value},
    S.interview.value: {S.interview.value, S.accepted.value, S.rejected.value, S.withdrawn.value},
    S.accepted.value: set(),
    S.rejected.value: set(),
    S.withdrawn.value: set(),
}

STATUS_MESSAGES = {
    S.accepted.value: MSG_ACCEPTED,
    S.rejected.value: MSG_REJECTED,
}


def can_transition(current: str, target: str, strict: bool = True) -> bool:
    """
    Whether `current -> target` is allowed.

    Terminal statuses never move. In strict mode the graph above applies;
    otherwise any move out of a non-terminal status is accepted.
    """
    current = normalize_status(current)
    target = normalize_status(target)
    if current in TERMINAL_STATUSES:
        return False
    if not strict:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, set())


def status_query_values(status: str) -> List[str]:
    """Canonical status plus every legacy alias stored for it."""
    canonical = normalize_status(status)
    return [canonical] + [alias for alias, value in LEGACY_STATUS_ALIASES.items() if value == canonical]


def student_summary(student: Optional[dict]) -> Optional[dict]:
    if student is None:
        return None
    return {
        "id": str(student["_id"]),
        "name": student.get("name"),
        "email": student.get("email"),
        "phone": student.get("phone"),
        "location": student.get("location"),
        "skills": student.get("skills") or [],
        "experience_level": student.get("experience_level"),
    }


def opportunity_summary(opportunity: Optional[dict], company: Optional[dict] = None) -> Optional[dict]:
    if opportunity is None:
        return None
    return {
        "id": str(opportunity["_id"]),
        "title": opportunity.get("title"),
        "status": opportunity.get("status"),
        "location": opportunity.get("location"),
        "opportunity_type": opportunity.get("opportunity_type"),
        "company": company_summary(company),
    }


def application_to_dict(doc: dict, opportunity: Optional[dict] = None,
                        company: Optional[dict] = None, student: Optional[dict] = None) -> dict:
    """Serialized application shaped for ApplicationResponse, status canonical."""
    out = serialize_doc(doc)
    out["status"] = normalize_status(out.get("status"))
    out["opportunity_details"] = opportunity_summary(opportunity, company)
    out["student_details"] = student_summary(student)
    return out


class ApplicationService:
    """The lifecycle engine: authorization, transitions and mirror upkeep."""

    def __init__(self):
        self.applications = ApplicationStore()
        self.opportunities = OpportunityStore()
        self.students = StudentStore()
        self.companies = CompanyStore()
        self.notifications = NotificationService()
        self.strict = get_settings().enforce_status_graph

    # ------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------

    def _get_or_404(self, application_id: Any) -> dict:
        app = self.applications.get(application_id)
        if app is None:
            raise NotFoundError("Application", str(application_id))
        return app

    def _owning_company(self, app: dict) -> Optional[ObjectId]:
        opportunity = self.opportunities.get(app["opportunity"])
        return opportunity["company"] if opportunity else None

    def _get_owned(self, company_id: Any, application_id: Any) -> dict:
        """Load an application the company may act on (it owns the opportunity)."""
        app = self._get_or_404(application_id)
        if self._owning_company(app) != to_object_id(company_id, "Company"):
            raise ForbiddenError("Only the company that posted this opportunity can do that")
        return app

    def _check_transition(self, current: str, target: str) -> None:
        if not can_transition(current, target, self.strict):
            raise InvalidTransitionError(normalize_status(current), normalize_status(target))

    def _write_status(self, app: dict, update: Dict[str, Any]) -> dict:
        """Write guarded on the status we validated against."""
        updated = self.applications.update(app["_id"], update, expected_status=app["status"])
        if updated is None:
            raise ConflictError("Application was modified concurrently, reload and try again",
                                code="APPLICATION_CHANGED")
        return updated

    def _sync_mirrors(self, context: str, steps: List[Tuple[str, Callable[[], Any]]]) -> None:
        """Run follow-up writes after the primary one; report any that fail."""
        failed = []
        for name, step in steps:
            try:
                step()
            except PyMongoError as e:
                logger.error("%s: %s failed: %s", context, name, e)
                failed.append(name)
        if failed:
            raise PartialFailureError(f"{context} was saved but these updates failed: {', '.join(failed)}")

    # ------------------------------------------------------------
    # operations
    # ------------------------------------------------------------

    def apply(self, student_id: Any, opportunity_id: Any,
              cover_letter: Optional[str] = None, resume: Optional[str] = None) -> dict:
        """Student applies to an active opportunity. One application per pair."""
        student = self.students.get_or_404(student_id)
        opportunity = self.opportunities.get_or_404(opportunity_id)

        if opportunity.get("status") != "active" or is_expired(opportunity):
            raise ValidationError("Opportunity is not accepting applications")

        if self.applications.find_one_for_pair(student["_id"], opportunity["_id"]):
            raise DuplicateApplicationError()

        now = utcnow()
        doc = {
            "student": student["_id"],
            "opportunity": opportunity["_id"],
            "status": S.pending.value,
            "resume": resume or "",
            "cover_letter": cover_letter,
            "interview": {},
            "interview_rounds": [],
            "notes": [],
            "last_updated_by": None,
            "last_status_change": now,
            "created_at": now,
            "updated_at": now
        }
        try:
            app = self.applications.insert(doc)
        except DuplicateKeyError:
            # Lost a race with a concurrent submission for the same pair
            raise DuplicateApplicationError()

        logger.info("application %s: student %s applied to %s", app["_id"], student["_id"], opportunity["_id"])
        self._sync_mirrors(f"Application {app['_id']}", [
            ("student.applications", lambda: self.students.add_application(student["_id"], app["_id"])),
            ("opportunity.applicants", lambda: self.opportunities.add_applicant(opportunity["_id"], student["_id"])),
        ])
        return app

    def set_status(self, company_id: Any, application_id: Any, status: str) -> dict:
        """Owning company moves the application; accepted/rejected notify the student."""
        target = normalize_status(status)
        if target not in COMPANY_TARGETS:
            raise ValidationError(f"Status '{status}' cannot be set by a company")

        app = self._get_owned(company_id, application_id)
        current = normalize_status(app["status"])
        self._check_transition(current, target)

        now = utcnow()
        updated = self._write_status(app, {"$set": {
            "status": target,
            "last_status_change": now,
            "last_updated_by": to_object_id(company_id, "Company"),
            "updated_at": now
        }})
        logger.info("application %s: %s -> %s by company %s", app["_id"], current, target, company_id)

        message = STATUS_MESSAGES.get(target)
        if message:
            self._sync_mirrors(f"Application {app['_id']}", [
                ("notify student", lambda: self.notifications.append(app["student"], message)),
            ])
        return updated

    def schedule_interview(self, company_id: Any, application_id: Any, interview: Dict[str, Any]) -> dict:
        """
        Schedule or reschedule the interview.

        The interview object is replaced, status becomes `interview`, a round
        is appended to interview_rounds and the student is notified each time.
        """
        app = self._get_owned(company_id, application_id)
        current = normalize_status(app["status"])
        self._check_transition(current, S.interview.value)

        slot = {
            "date": str(interview["date"]),
            "time": interview["time"],
            "type": interview["type"],
            "link": interview.get("link"),
            "notes": interview.get("notes"),
            "status": InterviewStatus.scheduled.value,
            "feedback": None,
            "interviewer": interview.get("interviewer"),
        }
        round_entry = {
            "round": len(app.get("interview_rounds") or []) + 1,
            "date": slot["date"],
            "time": slot["time"],
            "type": slot["type"],
            "link": slot["link"],
            "status": InterviewStatus.scheduled.value,
            "feedback": None,
            "interviewer": slot["interviewer"],
        }

        now = utcnow()
        changes = {
            "interview": slot,
            "status": S.interview.value,
            "last_updated_by": to_object_id(company_id, "Company"),
            "updated_at": now
        }
        if current != S.interview.value:
            changes["last_status_change"] = now

        updated = self._write_status(app, {"$set": changes, "$push": {"interview_rounds": round_entry}})
        logger.info("application %s: interview round %d on %s %s", app["_id"], round_entry["round"],
                    slot["date"], slot["time"])

        self._sync_mirrors(f"Application {app['_id']}", [
            ("notify student", lambda: self.notifications.append(app["student"], MSG_INTERVIEW_SCHEDULED)),
        ])
        return updated

    def withdraw(self, student_id: Any, application_id: Any) -> dict:
        """Applying student withdraws; the record stays with status `withdrawn`."""
        app = self._get_or_404(application_id)
        if app["student"] != to_object_id(student_id, "Student"):
            raise ForbiddenError("You can only withdraw your own applications")

        current = normalize_status(app["status"])
        self._check_transition(current, S.withdrawn.value)

        now = utcnow()
        updated = self._write_status(app, {"$set": {
            "status": S.withdrawn.value,
            "last_status_change": now,
            "updated_at": now
        }})
        logger.info("application %s: %s -> withdrawn by student %s", app["_id"], current, student_id)

        self._sync_mirrors(f"Application {app['_id']}", [
            ("opportunity.applicants", lambda: self.opportunities.remove_applicant(app["opportunity"], app["student"])),
        ])
        return updated

    def delete(self, actor: Dict[str, Any], application_id: Any) -> dict:
        """Hard delete by the applying student or the owning company; the resume file goes with it."""
        app = self._get_or_404(application_id)
        actor_id = to_object_id(actor["id"])

        if actor["role"] == "student":
            allowed = app["student"] == actor_id
        elif actor["role"] == "company":
            allowed = self._owning_company(app) == actor_id
        else:
            allowed = False
        if not allowed:
            raise ForbiddenError("You are not authorized to delete this application")

        if not self.applications.delete(app["_id"]):
            raise NotFoundError("Application", str(application_id))
        logger.info("application %s deleted by %s %s", app["_id"], actor["role"], actor_id)
        remove_upload(app.get("resume"))

        self._sync_mirrors(f"Deletion of application {app['_id']}", [
            ("opportunity.applicants", lambda: self.opportunities.remove_applicant(app["opportunity"], app["student"])),
            ("student.applications", lambda: self.students.remove_application(app["student"], app["_id"])),
        ])
        return app

    def delete_for_opportunity(self, opportunity_id: Any) -> int:
        """Remove the applications of a deleted posting, their resumes and student mirror entries."""
        oid = to_object_id(opportunity_id, "Opportunity")
        removed = self.applications.delete_for_opportunity(oid)
        if not removed:
            return 0
        for app in removed:
            remove_upload(app.get("resume"))
        logger.info("opportunity %s: %d applications deleted with it", oid, len(removed))

        removed_ids = [app["_id"] for app in removed]
        self._sync_mirrors(f"Deletion of opportunity {oid}", [
            ("student.applications", lambda: self.students.remove_applications_everywhere(removed_ids)),
        ])
        return len(removed)

    def add_note(self, company_id: Any, application_id: Any, text: str) -> dict:
        """Append a review note; status is untouched."""
        text = (text or "").strip()
        if not text:
            raise ValidationError("Note text is required")

        app = self._get_owned(company_id, application_id)
        now = utcnow()
        note = {"text": text, "added_by": to_object_id(company_id, "Company"), "date": now}
        updated = self.applications.update(app["_id"], {
            "$push": {"notes": note},
            "$set": {"updated_at": now}
        })
        if updated is None:
            raise NotFoundError("Application", str(application_id))
        return updated

    # ------------------------------------------------------------
    # reads
    # ------------------------------------------------------------

    def get(self, actor: Dict[str, Any], application_id: Any) -> dict:
        """Application with its opportunity and student, for its student or owning company."""
        app = self._get_or_404(application_id)
        actor_id = to_object_id(actor["id"])
        opportunity = self.opportunities.get(app["opportunity"])
        owner = opportunity["company"] if opportunity else None

        if not ((actor["role"] == "student" and app["student"] == actor_id)
                or (actor["role"] == "company" and owner == actor_id)):
            raise ForbiddenError("You cannot view this application")

        company = self.companies.get(owner) if owner else None
        student = self.students.find_by_ids([app["student"]]).get(app["student"])
        return application_to_dict(app, opportunity, company, student)

    def list_for_student(self, student_id: Any) -> List[dict]:
        apps = self.applications.find({"student": to_object_id(student_id, "Student")})
        opportunities = self.opportunities.find_by_ids({a["opportunity"] for a in apps})
        companies = self.companies.find_by_ids({o["company"] for o in opportunities.values()})
        result = []
        for app in apps:
            opportunity = opportunities.get(app["opportunity"])
            company = companies.get(opportunity["company"]) if opportunity else None
            result.append(application_to_dict(app, opportunity, company))
        return result

    def list_for_company(self, company_id: Any, opportunity_id: Any = None,
                         status: Optional[str] = None) -> List[dict]:
        cid = to_object_id(company_id, "Company")
        owned = {o["_id"]: o for o in self.opportunities.find({"company": cid})}

        if opportunity_id is not None:
            oid = to_object_id(opportunity_id, "Opportunity")
            if oid not in owned:
                raise ForbiddenError("Opportunity does not belong to this company")
            opportunity_ids = [oid]
        else:
            opportunity_ids = list(owned)

        query: Dict[str, Any] = {"opportunity": {"$in": opportunity_ids}}
        if status:
            query["status"] = {"$in": status_query_values(status)}

        apps = self.applications.find(query)
        students = self.students.find_by_ids({a["student"] for a in apps})
        company = self.companies.get(cid)
        return [
            application_to_dict(app, owned.get(app["opportunity"]), company, students.get(app["student"]))
            for app in apps
        ]

    def company_stats(self, opportunities: List[dict]) -> Dict[str, int]:
        """Dashboard counters over a company's postings."""
        apps = self.applications.find({"opportunity": {"$in": [o["_id"] for o in opportunities]}})
        statuses = [normalize_status(a.get("status")) for a in apps]
        return {
            "active_postings": sum(1 for o in opportunities if o.get("status") == "active"),
            "total_applications": len(apps),
            "interviews_scheduled": sum(
                1 for a, s in zip(apps, statuses)
                if (a.get("interview") or {}).get("date") and s not in (S.accepted.value, S.rejected.value)
            ),
            "accepted_applications": statuses.count(S.accepted.value),
            "rejected_applications": statuses.count(S.rejected.value),
        }

    # ------------------------------------------------------------
    # repair
    # ------------------------------------------------------------

    def reconcile_opportunity(self, opportunity_id: Any) -> List[ObjectId]:
        """Rebuild Opportunity.applicants from its non-withdrawn applications."""
        oid = to_object_id(opportunity_id, "Opportunity")
        applicants = self.applications.distinct_students(
            {"opportunity": oid, "status": {"$ne": S.withdrawn.value}}
        )
        if not self.opportunities.set_applicants(oid, applicants):
            raise NotFoundError("Opportunity", str(opportunity_id))
        logger.info("opportunity %s: applicants rebuilt (%d)", oid, len(applicants))
        return applicants

    def reconcile_student(self, student_id: Any) -> List[ObjectId]:
        """Rebuild Student.applications from the student's application documents."""
        sid = to_object_id(student_id, "Student")
        application_ids = self.applications.ids_for_student(sid)
        if not self.students.set_applications(sid, application_ids):
            raise NotFoundError("Student", str(student_id))
        logger.info("student %s: applications rebuilt (%d)", sid, len(application_ids))
        return application_ids

    def reconcile_all(self) -> Dict[str, int]:
        """Rebuild every applicant list and every student's application list."""
        opportunity_ids = self.opportunities.all_ids()
        for oid in opportunity_ids:
            self.reconcile_opportunity(oid)
        student_ids = self.students.all_ids()
        for sid in student_ids:
            self.reconcile_student(sid)
        return {"opportunities": len(opportunity_ids), "students": len(student_ids)}


def get_application_service() -> ApplicationService:
    return ApplicationService()
