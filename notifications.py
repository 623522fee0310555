"""
Notification records.

Delivery (push, email, sockets) happens elsewhere; this module only writes
and manages the rows users read from their inbox.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pymongo.errors import PyMongoError

from auth import Actor
from config import Config
from database import create_document, get_documents, to_object_id, utcnow
from errors import ForbiddenError, NotificationNotFound
from schemas import Notification

logger = logging.getLogger(__name__)

COLLECTION = "notification"


class Notifier:
    def __init__(self, db):
        self.db = db

    def create(self, user_id: str, type: str, message: str, details: Optional[Dict[str, Any]] = None) -> str:
        notification = Notification(user_id=str(user_id), type=type, message=message, details=details or {})
        return create_document(self.db, COLLECTION, notification)

    def notify(self, user_id: str, type: str, message: str, details: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """Fire-and-forget variant of ``create``: store errors are logged, not raised."""
        try:
            return self.create(user_id, type, message, details)
        except PyMongoError:
            logger.exception(f"Failed to record {type} notification for user {user_id}")
            return None


def _get_owned(db, actor: Actor, notification_id: str, action: str) -> Dict[str, Any]:
    oid = to_object_id(notification_id, NotificationNotFound)
    notification = db[COLLECTION].find_one({"_id": oid})
    if not notification:
        raise NotificationNotFound()
    if notification["user_id"] != actor.id:
        raise ForbiddenError(f"Not authorized to {action} this notification")
    return notification


def list_notifications(db, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
    return get_documents(db, COLLECTION, {"user_id": user_id}, limit=limit, newest_first=True)


def unread_count(db, user_id: str) -> int:
    return db[COLLECTION].count_documents({"user_id": user_id, "read": False})


def mark_as_read(db, actor: Actor, notification_id: str) -> Dict[str, Any]:
    notification = _get_owned(db, actor, notification_id, "update")
    db[COLLECTION].update_one(
        {"_id": notification["_id"]},
        {"$set": {"read": True, "updated_at": utcnow()}},
    )
    return db[COLLECTION].find_one({"_id": notification["_id"]})


def mark_all_as_read(db, user_id: str) -> int:
    result = db[COLLECTION].update_many(
        {"user_id": user_id, "read": False},
        {"$set": {"read": True, "updated_at": utcnow()}},
    )
    return result.modified_count


def delete_notification(db, actor: Actor, notification_id: str) -> None:
    notification = _get_owned(db, actor, notification_id, "delete")
    db[COLLECTION].delete_one({"_id": notification["_id"]})


def cleanup_old_notifications(db, retention_days: Optional[int] = None, now: Optional[datetime] = None) -> int:
    """Delete read notifications older than the retention window."""
    if retention_days is None:
        retention_days = Config.NOTIFICATION_RETENTION_DAYS
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    result = db[COLLECTION].delete_many({"read": True, "created_at": {"$lt": cutoff}})
    logger.info(f"Removed {result.deleted_count} notification(s) read before {cutoff.isoformat()}")
    return result.deleted_count
