"""Tests for the application lifecycle engine."""

import os
from datetime import timedelta

import pytest
from pymongo.errors import PyMongoError

from app.core.errors import (
    ConflictError,
    DuplicateApplicationError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PartialFailureError,
    ValidationError,
)
from app.core.config import get_settings
from app.services.application_service import (
    ApplicationService,
    application_to_dict,
    can_transition,
    status_query_values,
)
from app.services.mongo_service import OpportunityStore, StudentStore, utcnow
from app.services.notification_service import (
    MSG_ACCEPTED,
    MSG_INTERVIEW_SCHEDULED,
    MSG_REJECTED,
    NotificationService,
)

from conftest import make_opportunity


INTERVIEW = {
    "date": "2025-01-10",
    "time": "14:00",
    "type": "virtual",
    "link": "https://meet.example.com/abc",
    "notes": "Bring your portfolio",
    "interviewer": "Dana",
}


def inbox(student):
    return NotificationService().list(student["_id"])


def reload_student(student):
    return StudentStore().get(student["_id"])


def reload_opportunity(opportunity):
    return OpportunityStore().get(opportunity["_id"])


def upload_path(public_path):
    return os.path.join(get_settings().upload_dir, public_path[len("/uploads/"):])


def stored_upload(name):
    """Write a file into the upload dir and return its public path."""
    os.makedirs(get_settings().upload_dir, exist_ok=True)
    with open(os.path.join(get_settings().upload_dir, name), "wb") as fh:
        fh.write(b"%PDF-1.4 fake")
    return "/uploads/" + name


class TestCanTransition:
    """The status graph itself."""

    def test_forward_moves_allowed(self):
        assert can_transition("pending", "under_review")
        assert can_transition("under_review", "interview")
        assert can_transition("interview", "accepted")

    def test_reschedule_keeps_interview(self):
        assert can_transition("interview", "interview")

    def test_skip_to_accepted_only_when_permissive(self):
        assert not can_transition("pending", "accepted")
        assert can_transition("pending", "accepted", strict=False)

    @pytest.mark.parametrize("terminal", ["accepted", "rejected", "withdrawn"])
    def test_terminal_never_moves(self, terminal):
        assert not can_transition(terminal, "interview")
        assert not can_transition(terminal, "withdrawn", strict=False)

    def test_legacy_aliases_are_understood(self):
        assert can_transition("new", "under_review")
        assert can_transition("interview_scheduled", "accepted")

    def test_status_query_values_include_aliases(self):
        assert set(status_query_values("under_review")) == {"under_review", "reviewing"}
        assert status_query_values("accepted") == ["accepted"]


class TestApply:
    """Creating applications."""

    def test_creates_pending_application(self, service, student, opportunity):
        app = service.apply(student["_id"], opportunity["_id"], "Hello", "/uploads/cv.pdf")

        assert app["status"] == "pending"
        assert app["cover_letter"] == "Hello"
        assert app["resume"] == "/uploads/cv.pdf"
        assert app["interview"] == {}
        assert app["interview_rounds"] == []

    def test_both_mirrors_updated(self, service, student, opportunity):
        app = service.apply(str(student["_id"]), str(opportunity["_id"]))

        assert app["_id"] in reload_student(student)["applications"]
        assert student["_id"] in reload_opportunity(opportunity)["applicants"]

    def test_second_application_is_duplicate(self, service, student, opportunity, db):
        service.apply(student["_id"], opportunity["_id"])

        with pytest.raises(DuplicateApplicationError):
            service.apply(student["_id"], opportunity["_id"])
        assert db.applications.count_documents({}) == 1

    def test_unique_index_catches_race(self, service, student, opportunity, monkeypatch):
        service.apply(student["_id"], opportunity["_id"])
        # Pretend the pre-check ran before the first insert landed
        monkeypatch.setattr(service.applications, "find_one_for_pair", lambda s, o: None)

        with pytest.raises(DuplicateApplicationError):
            service.apply(student["_id"], opportunity["_id"])

    def test_closed_opportunity_rejected(self, service, student, company):
        closed = make_opportunity(company, status="closed")

        with pytest.raises(ValidationError):
            service.apply(student["_id"], closed["_id"])

    def test_past_deadline_rejected(self, service, student, company):
        stale = make_opportunity(company, deadline=utcnow() - timedelta(days=1))

        with pytest.raises(ValidationError):
            service.apply(student["_id"], stale["_id"])

    def test_unknown_opportunity(self, service, student):
        with pytest.raises(NotFoundError):
            service.apply(student["_id"], "64b000000000000000000000")
        with pytest.raises(NotFoundError):
            service.apply(student["_id"], "not-an-id")


class TestSetStatus:
    """Company-driven status changes."""

    def test_under_review_sends_no_notification(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        updated = service.set_status(company["_id"], app["_id"], "under_review")

        assert updated["status"] == "under_review"
        assert updated["last_updated_by"] == company["_id"]
        assert inbox(student) == []

    def test_rejected_sends_one_notification(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        service.set_status(company["_id"], app["_id"], "rejected")

        assert inbox(student) == [MSG_REJECTED]

    def test_accepted_sends_one_notification(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])
        service.schedule_interview(company["_id"], app["_id"], INTERVIEW)

        service.set_status(company["_id"], app["_id"], "accepted")

        assert inbox(student) == [MSG_INTERVIEW_SCHEDULED, MSG_ACCEPTED]

    def test_strict_mode_blocks_skipping(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        with pytest.raises(InvalidTransitionError):
            service.set_status(company["_id"], app["_id"], "accepted")
        assert service.applications.get(app["_id"])["status"] == "pending"

    def test_permissive_mode_allows_skipping(self, service, student, company, opportunity):
        service.strict = False
        app = service.apply(student["_id"], opportunity["_id"])

        updated = service.set_status(company["_id"], app["_id"], "accepted")

        assert updated["status"] == "accepted"
        assert inbox(student) == [MSG_ACCEPTED]

    def test_terminal_status_is_final(self, service, student, company, opportunity):
        service.strict = False
        app = service.apply(student["_id"], opportunity["_id"])
        service.set_status(company["_id"], app["_id"], "rejected")

        with pytest.raises(InvalidTransitionError):
            service.set_status(company["_id"], app["_id"], "accepted")
        assert inbox(student) == [MSG_REJECTED]

    @pytest.mark.parametrize("status", ["pending", "withdrawn", "hired"])
    def test_company_cannot_set_other_statuses(self, service, student, company, opportunity, status):
        app = service.apply(student["_id"], opportunity["_id"])

        with pytest.raises(ValidationError):
            service.set_status(company["_id"], app["_id"], status)

    def test_non_owner_company_forbidden(self, service, student, other_company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        with pytest.raises(ForbiddenError):
            service.set_status(other_company["_id"], app["_id"], "under_review")

    def test_legacy_stored_status(self, service, student, company, opportunity, db):
        app = service.apply(student["_id"], opportunity["_id"])
        db.applications.update_one({"_id": app["_id"]}, {"$set": {"status": "reviewing"}})

        assert application_to_dict(service.applications.get(app["_id"]))["status"] == "under_review"
        updated = service.set_status(company["_id"], app["_id"], "interview_scheduled")
        assert updated["status"] == "interview"

    def test_stale_write_conflicts(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])
        stale = service.applications.get(app["_id"])
        service.set_status(company["_id"], app["_id"], "under_review")

        with pytest.raises(ConflictError) as exc:
            service._write_status(stale, {"$set": {"status": "rejected"}})
        assert exc.value.code == "APPLICATION_CHANGED"
        assert service.applications.get(app["_id"])["status"] == "under_review"


class TestScheduleInterview:
    """Scheduling and rescheduling interviews."""

    def test_first_schedule(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        updated = service.schedule_interview(company["_id"], app["_id"], INTERVIEW)

        assert updated["status"] == "interview"
        assert updated["interview"]["date"] == "2025-01-10"
        assert updated["interview"]["time"] == "14:00"
        assert updated["interview"]["link"] == INTERVIEW["link"]
        assert updated["interview"]["status"] == "scheduled"
        assert [r["round"] for r in updated["interview_rounds"]] == [1]
        assert inbox(student) == [MSG_INTERVIEW_SCHEDULED]

    def test_reschedule_notifies_again(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])
        first = service.schedule_interview(company["_id"], app["_id"], INTERVIEW)

        moved = dict(INTERVIEW, date="2025-01-12", time="09:30")
        second = service.schedule_interview(company["_id"], app["_id"], moved)

        assert second["status"] == "interview"
        assert second["interview"]["date"] == "2025-01-12"
        assert [r["round"] for r in second["interview_rounds"]] == [1, 2]
        assert second["last_status_change"] == first["last_status_change"]
        assert inbox(student) == [MSG_INTERVIEW_SCHEDULED, MSG_INTERVIEW_SCHEDULED]

    def test_cannot_schedule_terminal(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])
        service.set_status(company["_id"], app["_id"], "rejected")

        with pytest.raises(InvalidTransitionError):
            service.schedule_interview(company["_id"], app["_id"], INTERVIEW)
        assert inbox(student) == [MSG_REJECTED]

    def test_non_owner_company_forbidden(self, service, student, other_company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        with pytest.raises(ForbiddenError):
            service.schedule_interview(other_company["_id"], app["_id"], INTERVIEW)
        assert inbox(student) == []


class TestWithdraw:
    """Students withdrawing their own applications."""

    def test_withdraw_keeps_record(self, service, student, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        updated = service.withdraw(student["_id"], app["_id"])

        assert updated["status"] == "withdrawn"
        assert app["_id"] in reload_student(student)["applications"]
        assert student["_id"] not in reload_opportunity(opportunity)["applicants"]

    def test_other_student_forbidden(self, service, student, other_student, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        with pytest.raises(ForbiddenError):
            service.withdraw(other_student["_id"], app["_id"])
        assert service.applications.get(app["_id"])["status"] == "pending"

    def test_cannot_withdraw_twice(self, service, student, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])
        service.withdraw(student["_id"], app["_id"])

        with pytest.raises(InvalidTransitionError):
            service.withdraw(student["_id"], app["_id"])

    def test_cannot_withdraw_after_decision(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])
        service.set_status(company["_id"], app["_id"], "rejected")

        with pytest.raises(InvalidTransitionError):
            service.withdraw(student["_id"], app["_id"])


class TestDelete:
    """Hard deletion and mirror cleanup."""

    def test_student_deletes_own(self, service, student, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        service.delete({"id": str(student["_id"]), "role": "student"}, app["_id"])

        assert app["_id"] not in reload_student(student)["applications"]
        assert student["_id"] not in reload_opportunity(opportunity)["applicants"]
        with pytest.raises(NotFoundError):
            service.get({"id": str(student["_id"]), "role": "student"}, app["_id"])

    def test_owning_company_deletes(self, service, student, company, opportunity, db):
        app = service.apply(student["_id"], opportunity["_id"])

        service.delete({"id": str(company["_id"]), "role": "company"}, app["_id"])

        assert db.applications.count_documents({}) == 0

    def test_others_forbidden(self, service, student, other_student, other_company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        with pytest.raises(ForbiddenError):
            service.delete({"id": str(other_student["_id"]), "role": "student"}, app["_id"])
        with pytest.raises(ForbiddenError):
            service.delete({"id": str(other_company["_id"]), "role": "company"}, app["_id"])
        assert service.applications.get(app["_id"]) is not None

    def test_missing_application(self, service, student):
        with pytest.raises(NotFoundError):
            service.delete({"id": str(student["_id"]), "role": "student"}, "64b000000000000000000000")

    def test_resume_removed_even_when_mirror_fails(self, service, student, opportunity, monkeypatch, db):
        resume = stored_upload("cv.pdf")
        app = service.apply(student["_id"], opportunity["_id"], resume=resume)

        def broken(*args):
            raise PyMongoError("connection reset")

        monkeypatch.setattr(service.students, "remove_application", broken)

        with pytest.raises(PartialFailureError):
            service.delete({"id": str(student["_id"]), "role": "student"}, app["_id"])
        assert db.applications.count_documents({}) == 0
        assert not os.path.exists(upload_path(resume))


class TestDeleteForOpportunity:
    """Applications go away with their posting."""

    def test_removes_applications_and_mirrors(self, service, student, other_student, opportunity, db):
        resume = stored_upload("cv.pdf")
        service.apply(student["_id"], opportunity["_id"], resume=resume)
        service.apply(other_student["_id"], opportunity["_id"])

        assert service.delete_for_opportunity(opportunity["_id"]) == 2

        assert db.applications.count_documents({}) == 0
        assert reload_student(student)["applications"] == []
        assert reload_student(other_student)["applications"] == []
        assert not os.path.exists(upload_path(resume))

    def test_other_postings_untouched(self, service, student, company, opportunity):
        other = make_opportunity(company, title="Frontend Intern")
        kept = service.apply(student["_id"], other["_id"])
        service.apply(student["_id"], opportunity["_id"])

        assert service.delete_for_opportunity(opportunity["_id"]) == 1
        assert reload_student(student)["applications"] == [kept["_id"]]

    def test_nothing_to_remove(self, service, opportunity):
        assert service.delete_for_opportunity(opportunity["_id"]) == 0


class TestNotes:
    """Company review notes."""

    def test_add_note(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        updated = service.add_note(company["_id"], app["_id"], "  Strong candidate ")

        assert updated["notes"][0]["text"] == "Strong candidate"
        assert updated["notes"][0]["added_by"] == company["_id"]
        assert updated["status"] == "pending"

    def test_empty_note_rejected(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        with pytest.raises(ValidationError):
            service.add_note(company["_id"], app["_id"], "   ")

    def test_non_owner_forbidden(self, service, student, other_company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        with pytest.raises(ForbiddenError):
            service.add_note(other_company["_id"], app["_id"], "Hi")


class TestReads:
    """Fetching and listing applications."""

    def test_get_for_student_and_owner(self, service, student, company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        as_student = service.get({"id": str(student["_id"]), "role": "student"}, app["_id"])
        as_company = service.get({"id": str(company["_id"]), "role": "company"}, app["_id"])

        assert as_student["id"] == str(app["_id"])
        assert as_student["opportunity_details"]["title"] == "Backend Intern"
        assert as_company["student_details"]["name"] == "Alice"

    def test_get_forbidden_for_strangers(self, service, student, other_student, other_company, opportunity):
        app = service.apply(student["_id"], opportunity["_id"])

        with pytest.raises(ForbiddenError):
            service.get({"id": str(other_student["_id"]), "role": "student"}, app["_id"])
        with pytest.raises(ForbiddenError):
            service.get({"id": str(other_company["_id"]), "role": "company"}, app["_id"])

    def test_list_for_student(self, service, student, opportunity):
        service.apply(student["_id"], opportunity["_id"])

        apps = service.list_for_student(student["_id"])

        assert len(apps) == 1
        assert apps[0]["opportunity_details"]["company"]["name"] == "Acme Corp"

    def test_list_for_company_filters_status_with_aliases(self, service, student, other_student,
                                                           company, opportunity, db):
        first = service.apply(student["_id"], opportunity["_id"])
        service.apply(other_student["_id"], opportunity["_id"])
        db.applications.update_one({"_id": first["_id"]}, {"$set": {"status": "reviewing"}})

        apps = service.list_for_company(company["_id"], status="under_review")

        assert [a["id"] for a in apps] == [str(first["_id"])]
        assert apps[0]["status"] == "under_review"

    def test_list_for_company_foreign_opportunity(self, service, other_company, opportunity):
        with pytest.raises(ForbiddenError):
            service.list_for_company(other_company["_id"], opportunity_id=opportunity["_id"])

    def test_company_stats(self, service, student, other_student, company, opportunity):
        first = service.apply(student["_id"], opportunity["_id"])
        second = service.apply(other_student["_id"], opportunity["_id"])
        service.schedule_interview(company["_id"], first["_id"], INTERVIEW)
        service.set_status(company["_id"], second["_id"], "rejected")

        stats = service.company_stats([reload_opportunity(opportunity)])

        assert stats == {
            "active_postings": 1,
            "total_applications": 2,
            "interviews_scheduled": 1,
            "accepted_applications": 0,
            "rejected_applications": 1,
        }


class TestMirrors:
    """Mirror failures and repair."""

    def test_failed_mirror_reports_partial_failure(self, service, student, opportunity, monkeypatch, db):
        def broken(*args):
            raise PyMongoError("connection reset")

        monkeypatch.setattr(service.opportunities, "add_applicant", broken)

        with pytest.raises(PartialFailureError):
            service.apply(student["_id"], opportunity["_id"])

        app = db.applications.find_one({"student": student["_id"]})
        assert app is not None
        assert app["_id"] in reload_student(student)["applications"]
        assert reload_opportunity(opportunity)["applicants"] == []

        service.reconcile_opportunity(opportunity["_id"])
        assert reload_opportunity(opportunity)["applicants"] == [student["_id"]]

    def test_reconcile_skips_withdrawn(self, service, student, other_student, opportunity, db):
        app = service.apply(student["_id"], opportunity["_id"])
        service.apply(other_student["_id"], opportunity["_id"])
        service.withdraw(student["_id"], app["_id"])
        db.opportunities.update_one({"_id": opportunity["_id"]}, {"$set": {"applicants": []}})

        assert service.reconcile_all() == {"opportunities": 1, "students": 2}
        assert reload_opportunity(opportunity)["applicants"] == [other_student["_id"]]
        assert reload_student(student)["applications"] == [app["_id"]]

    def test_failed_student_mirror_repaired(self, service, student, opportunity, monkeypatch, db):
        def broken(*args):
            raise PyMongoError("connection reset")

        monkeypatch.setattr(service.students, "add_application", broken)

        with pytest.raises(PartialFailureError):
            service.apply(student["_id"], opportunity["_id"])
        assert reload_student(student)["applications"] == []

        ApplicationService().reconcile_all()

        app = db.applications.find_one({"student": student["_id"]})
        assert reload_student(student)["applications"] == [app["_id"]]
        assert reload_opportunity(opportunity)["applicants"] == [student["_id"]]

    def test_reconcile_unknown_student(self, service):
        with pytest.raises(NotFoundError):
            service.reconcile_student("64b000000000000000000000")


class TestEndToEnd:
    """apply -> under_review -> interview -> accepted"""

    def test_full_lifecycle(self, db, student, company, opportunity):
        service = ApplicationService()

        app = service.apply(student["_id"], opportunity["_id"], "I'd love to join")
        service.set_status(company["_id"], app["_id"], "under_review")
        service.schedule_interview(company["_id"], app["_id"], INTERVIEW)
        final = service.set_status(company["_id"], app["_id"], "accepted")

        assert final["status"] == "accepted"
        assert final["interview"]["date"] == "2025-01-10"
        assert final["interview"]["time"] == "14:00"
        assert final["interview"]["link"] == "https://meet.example.com/abc"
        assert inbox(student) == [MSG_INTERVIEW_SCHEDULED, MSG_ACCEPTED]
