import unittest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from bson import ObjectId
from pydantic import ValidationError
from pymongo.errors import ServerSelectionTimeoutError

from auth import Actor
from errors import ForbiddenError, NotificationNotFound
from notifications import (
    Notifier,
    cleanup_old_notifications,
    delete_notification,
    list_notifications,
    mark_all_as_read,
    mark_as_read,
    unread_count,
)
from store_fixtures import make_db

ALICE = Actor(id="alice", role="renter")
BOB = Actor(id="bob", role="driver")
NOW = datetime(2025, 3, 1, 12, 0)


class TestNotifier(unittest.TestCase):
    def setUp(self):
        self.db = make_db()
        self.notifier = Notifier(self.db)

    def test_create(self):
        notification_id = self.notifier.create("alice", "new_booking", "Booked", {"bookingId": "b1"})
        doc = self.db["notification"].find_one({"_id": ObjectId(notification_id)})
        self.assertEqual(doc["user_id"], "alice")
        self.assertFalse(doc["read"])
        self.assertEqual(doc["details"], {"bookingId": "b1"})
        self.assertIn("created_at", doc)

    def test_unknown_type_rejected(self):
        with self.assertRaises(ValidationError):
            self.notifier.create("alice", "party_invite", "hi")

    def test_notify_logs_store_errors(self):
        broken = MagicMock()
        broken.__getitem__.return_value.insert_one.side_effect = ServerSelectionTimeoutError("no servers")
        with self.assertLogs("notifications", level="ERROR"):
            self.assertIsNone(Notifier(broken).notify("alice", "new_booking", "Booked"))

    def test_create_raises_store_errors(self):
        broken = MagicMock()
        broken.__getitem__.return_value.insert_one.side_effect = ServerSelectionTimeoutError("no servers")
        with self.assertRaises(ServerSelectionTimeoutError):
            Notifier(broken).create("alice", "new_booking", "Booked")


class TestInbox(unittest.TestCase):
    def setUp(self):
        self.db = make_db()

    def add(self, user_id, read=False, age=timedelta(0), type="new_booking"):
        doc = {"user_id": user_id, "type": type, "message": "m", "read": read, "details": {}, "created_at": NOW - age}
        return str(self.db["notification"].insert_one(doc).inserted_id)

    def test_list_newest_first_and_limited(self):
        ids = [self.add("alice", age=timedelta(hours=h)) for h in range(25)]
        self.add("bob")
        listed = list_notifications(self.db, "alice")
        self.assertEqual(len(listed), 20)
        self.assertEqual([str(n["_id"]) for n in listed], ids[:20])

    def test_unread_and_mark_all(self):
        self.add("alice")
        self.add("alice")
        self.add("alice", read=True)
        self.add("bob")
        self.assertEqual(unread_count(self.db, "alice"), 2)
        self.assertEqual(mark_all_as_read(self.db, "alice"), 2)
        self.assertEqual(unread_count(self.db, "alice"), 0)
        self.assertEqual(unread_count(self.db, "bob"), 1)

    def test_mark_as_read_checks_owner(self):
        notification_id = self.add("alice")
        with self.assertRaises(ForbiddenError):
            mark_as_read(self.db, BOB, notification_id)
        self.assertTrue(mark_as_read(self.db, ALICE, notification_id)["read"])

    def test_missing_notification(self):
        for notification_id in (str(ObjectId()), "x"):
            with self.subTest(notification_id=notification_id):
                with self.assertRaises(NotificationNotFound):
                    mark_as_read(self.db, ALICE, notification_id)
                with self.assertRaises(NotificationNotFound):
                    delete_notification(self.db, ALICE, notification_id)

    def test_delete_checks_owner(self):
        notification_id = self.add("alice")
        with self.assertRaises(ForbiddenError):
            delete_notification(self.db, BOB, notification_id)
        delete_notification(self.db, ALICE, notification_id)
        self.assertEqual(self.db["notification"].count_documents({}), 0)

    def test_cleanup_removes_only_old_read(self):
        self.add("alice", read=True, age=timedelta(days=31))
        keep_unread = self.add("alice", read=False, age=timedelta(days=90))
        keep_recent = self.add("alice", read=True, age=timedelta(days=29))

        removed = cleanup_old_notifications(self.db, retention_days=30, now=NOW)

        self.assertEqual(removed, 1)
        remaining = sorted(str(n["_id"]) for n in self.db["notification"].find())
        self.assertEqual(remaining, sorted([keep_unread, keep_recent]))


if __name__ == "__main__":
    unittest.main()
