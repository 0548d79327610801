"""Tests for the admin notification store and the merged activity feed."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import ADDRESS
from storefront.config import Settings
from storefront.errors import DependencyError, NotFoundError, ValidationError
from storefront.models.notification import Notification
from storefront.services.notification_store import ActivityFeed, NotificationStore, is_synthetic_id
from storefront.services.order_lifecycle import OrderLifecycleService
from storefront.utils.clock import utcnow


@pytest.fixture
def store(db):
    return NotificationStore(db)


class TestNotificationStore:
    def test_append_is_unread(self, store):
        n = store.append("system", "Nightly report ready", {"rows": 12})

        assert n.id is not None
        assert n.read is False
        assert n.data == {"rows": 12}
        assert store.unread_count() == 1

    def test_data_is_json_encoded(self, store):
        n = store.append("new_order", "New order", {"at": utcnow()})
        assert isinstance(n.data["at"], str)

    def test_invalid_type(self, store):
        with pytest.raises(ValidationError):
            store.append("gossip", "Nope")

    def test_mark_read(self, store):
        n = store.append("system", "Hello")
        store.mark_read(n.id)
        store.mark_read(n.id)

        assert store.get(n.id).read is True
        assert store.unread_count() == 0

    def test_mark_read_missing(self, store):
        with pytest.raises(NotFoundError):
            store.mark_read(404)

    def test_mark_all_read_is_idempotent(self, store):
        for i in range(3):
            store.append("system", f"Message {i}")

        assert store.mark_all_read() == 3
        assert store.mark_all_read() == 0
        assert store.unread_count() == 0

    def test_list_by_type(self, store):
        store.append("new_order", "Order A")
        store.append("return_request", "Return B")
        store.append("new_order", "Order C")

        assert [n.message for n in store.list_by_type("new_order")] == ["Order C", "Order A"]

    def test_delete_one(self, store):
        keep = store.append("system", "Keep")
        drop = store.append("system", "Drop")
        store.delete_one(drop.id)

        assert [n.id for n in store.list_recent()] == [keep.id]
        with pytest.raises(NotFoundError):
            store.delete_one(drop.id)

    def test_clear_all(self, store, db):
        store.append("system", "One")
        store.append("system", "Two")

        assert store.clear_all() == 2
        assert db.query(Notification).count() == 0

    def test_write_failure_is_a_dependency_error(self, store, db, monkeypatch):
        def boom():
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(db, "commit", boom)
        with pytest.raises(DependencyError):
            store.append("system", "Lost")


class TestSyntheticIds:
    @pytest.mark.parametrize(
        "value,expected",
        [("order-abc-1700000000000", True), ("user-7-1700000000000", True), ("12", False), ("orders", False)],
    )
    def test_is_synthetic_id(self, value, expected):
        assert is_synthetic_id(value) is expected


class TestActivityFeed:
    def test_merges_stored_and_synthetic_entries(self, db, customer, customer_caller, admin, filled_cart):
        order = OrderLifecycleService(db).create_order(customer_caller, "cod", ADDRESS)
        feed = ActivityFeed(db).build()

        ids = [e["id"] for e in feed["notifications"]]
        stored = [e for e in feed["notifications"] if e["isStored"]]
        order_entries = [e for e in feed["notifications"] if e["id"].startswith("order-")]
        user_entries = [e for e in feed["notifications"] if e["id"].startswith("user-")]

        assert len(stored) == 1
        assert stored[0]["id"].isdigit()
        assert order_entries[0]["data"]["orderId"] == order.id
        assert order_entries[0]["message"] == f"New Order #{order.id[-6:]} - ₹250.00"
        assert [e["data"]["userId"] for e in user_entries] == [customer.id]
        assert feed["hasActivities"] is True
        assert feed["unreadCount"] == 1
        assert feed["totalCount"] == len(ids)

    def test_sorted_newest_first(self, db, store, customer):
        store.append("system", "Older")
        latest = store.append("system", "Newer")
        latest.created_at = utcnow() + timedelta(minutes=1)
        db.commit()

        entries = ActivityFeed(db).build()["notifications"]
        stamps = [e["createdAt"] for e in entries]
        assert stamps == sorted(stamps, reverse=True)
        assert entries[0]["message"] == "Newer"

    def test_capped_at_feed_limit(self, db, store, customer):
        for i in range(5):
            store.append("system", f"Message {i}")
        settings = Settings()
        settings.NOTIFICATION_FEED_LIMIT = 3

        feed = ActivityFeed(db, settings=settings).build()
        assert feed["totalCount"] == 3
        assert len(feed["notifications"]) == 3
        assert feed["unreadCount"] == 5

    def test_old_activity_is_left_out(self, db, store, customer):
        store.append("system", "Stored stays")
        feed = ActivityFeed(db).build(now=utcnow() + timedelta(hours=48))

        assert feed["hasActivities"] is False
        assert [e["message"] for e in feed["notifications"]] == ["Stored stays"]

    def test_admins_are_not_listed_as_registrations(self, db, admin):
        feed = ActivityFeed(db).build()
        assert feed["notifications"] == []
        assert feed["hasActivities"] is False
