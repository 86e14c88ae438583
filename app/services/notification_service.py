"""
Notification Service - each student's inbox of plain-text notices.

The inbox is an ordered list of strings on the student document. The
lifecycle engine appends fixed messages; the profile routes list and dismiss
them. Dismissal is positional, so a dismiss that races an append could hit
the wrong element: the write is a compare-and-set on the whole list and
fails with ConflictError when the list moved underneath it.
"""

import logging
from typing import List

from bson import ObjectId
from pymongo.collection import Collection

from app.core.config import get_settings
from app.core.errors import ConflictError, InvalidIndexError, NotFoundError
from app.db.mongodb import get_collection, COLLECTIONS
from app.services.mongo_service import to_object_id

logger = logging.getLogger(__name__)

# Fixed messages pushed by lifecycle transitions
MSG_ACCEPTED = "Your application was accepted."
MSG_REJECTED = "Your application was rejected."
MSG_INTERVIEW_SCHEDULED = "Your interview is scheduled."


class NotificationService:
    """Append, list and dismiss a student's notifications."""

    def __init__(self):
        self.collection: Collection = get_collection(COLLECTIONS["students"])
        self.limit = get_settings().notification_inbox_limit

    def _student_oid(self, student_id) -> ObjectId:
        return to_object_id(student_id, "Student")

    def append(self, student_id, message: str) -> bool:
        """
        Push a message to the end of the inbox.

        The inbox keeps the newest `notification_inbox_limit` entries.
        Returns False if the student does not exist.
        """
        push = {"$each": [message]}
        if self.limit and self.limit > 0:
            push["$slice"] = -self.limit
        result = self.collection.update_one(
            {"_id": self._student_oid(student_id)},
            {"$push": {"notifications": push}}
        )
        if result.matched_count == 0:
            logger.warning("notification for missing student %s dropped", student_id)
            return False
        return True

    def list(self, student_id) -> List[str]:
        doc = self.collection.find_one({"_id": self._student_oid(student_id)}, {"notifications": 1})
        if doc is None:
            raise NotFoundError("Student", str(student_id))
        return list(doc.get("notifications") or [])

    def dismiss(self, student_id, index: int) -> List[str]:
        """Remove the notification at `index`; returns the remaining list."""
        oid = self._student_oid(student_id)
        current = self.list(oid)
        if index < 0 or index >= len(current):
            raise InvalidIndexError(index)

        remaining = current[:index] + current[index + 1:]
        result = self.collection.update_one(
            {"_id": oid, "notifications": current},
            {"$set": {"notifications": remaining}}
        )
        if result.matched_count == 0:
            raise ConflictError("Notifications changed, reload and try again", code="NOTIFICATIONS_CHANGED")
        return remaining

    def dismiss_all(self, student_id) -> None:
        result = self.collection.update_one(
            {"_id": self._student_oid(student_id)},
            {"$set": {"notifications": []}}
        )
        if result.matched_count == 0:
            raise NotFoundError("Student", str(student_id))


def get_notification_service() -> NotificationService:
    return NotificationService()
