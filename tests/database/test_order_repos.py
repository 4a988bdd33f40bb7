"""OrderRepository tests.

Covers order numbering (including concurrent creation), validation,
board listing and decoration, status transitions, patch / replace /
delete and the per-status summary.
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

import pytest

from database.errors import ConflictError, NotFoundError, ValidationError
from database.models import Order, OrderStatus
from database.order_repos import LIFECYCLE_TRANSITIONS, OrderRepository, TransitionPolicy
from tests.conftest import make_order_payload


class TestOrderNumbering:
    """Test order number allocation."""

    def test_first_order_gets_1001(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        assert created["order_number"] == 1001
        assert created["id"] > 0

    def test_numbers_increase(self, temp_db):
        numbers = [temp_db.create_order(make_order_payload())["order_number"] for _ in range(3)]
        assert numbers == [1001, 1002, 1003]

    def test_numbers_are_not_reused_after_delete(self, temp_db):
        temp_db.create_order(make_order_payload())
        last = temp_db.create_order(make_order_payload())
        temp_db.orders.delete_order(last["id"])

        assert temp_db.create_order(make_order_payload())["order_number"] == 1003

    def test_existing_higher_number_is_respected(self, temp_db):
        with temp_db.transaction() as session:
            session.add(Order(
                order_number=2000,
                customer_first_name="Imported",
                customer_last_name="Order",
                customer_phone="555",
                customer_email="old@example.com",
                customer_address="Somewhere",
            ))
        assert temp_db.create_order(make_order_payload())["order_number"] == 2001

    def test_custom_start_number(self, temp_db):
        repo = OrderRepository(temp_db.conn, number_start=5000)
        assert repo.create_order(make_order_payload())["order_number"] == 5000

    def test_conflicts_are_retried_then_surfaced(self, temp_db, monkeypatch):
        temp_db.create_order(make_order_payload())
        repo = OrderRepository(temp_db.conn, number_retries=3)
        calls = []

        def stale_number(session):
            calls.append(1)
            return 1001

        monkeypatch.setattr(repo, "_next_order_number", stale_number)
        with pytest.raises(ConflictError):
            repo.create_order(make_order_payload())
        assert len(calls) == 3

    def test_concurrent_creates_never_duplicate(self, temp_db):
        workers = 8
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(temp_db.create_order, make_order_payload(customer_first_name=f"C{i}"))
                for i in range(workers)
            ]
            numbers = [future.result()["order_number"] for future in futures]

        assert sorted(numbers) == list(range(1001, 1001 + workers))
        with temp_db.get_session() as session:
            assert session.query(Order).count() == workers


class TestCreateValidation:
    """Test OrderRepository.create_order() validation."""

    def test_defaults(self, temp_db):
        created = temp_db.create_order(make_order_payload(copies=None, notes=None))
        order = temp_db.orders.get_order(created["id"])

        assert order["status"] == "received"
        assert order["copies"] == 1
        assert order["notes"] == ""
        assert order["created_by"] == "public"
        assert order["pickup_date"] == "2024-01-28"
        assert order["double_sided"] is True
        assert order["estimated_price"] == pytest.approx(1.25)

    def test_missing_fields_are_collected(self, temp_db):
        with pytest.raises(ValidationError) as exc_info:
            temp_db.create_order({"customer_email": "nope"})

        fields = {error["field"] for error in exc_info.value.errors}
        assert fields == {
            "customer_first_name", "customer_last_name", "customer_phone",
            "customer_email", "customer_address", "pickup_date",
        }

    @pytest.mark.parametrize("email", ["", "plain", "a@b", "a b@example.com"])
    def test_invalid_email(self, temp_db, email):
        with pytest.raises(ValidationError):
            temp_db.create_order(make_order_payload(customer_email=email))

    def test_blank_name(self, temp_db):
        with pytest.raises(ValidationError):
            temp_db.create_order(make_order_payload(customer_first_name="   "))

    def test_invalid_pickup_date(self, temp_db):
        with pytest.raises(ValidationError):
            temp_db.create_order(make_order_payload(pickup_date="28/01/2024"))

    def test_unknown_status(self, temp_db):
        with pytest.raises(ValidationError):
            temp_db.create_order(make_order_payload(status="lost"))

    def test_negative_price(self, temp_db):
        with pytest.raises(ValidationError):
            temp_db.create_order(make_order_payload(estimated_price=-1))

    def test_failed_validation_consumes_no_number(self, temp_db):
        with pytest.raises(ValidationError):
            temp_db.create_order(make_order_payload(customer_phone=""))
        assert temp_db.create_order(make_order_payload())["order_number"] == 1001


class TestListOrders:
    """Test OrderRepository.list_orders() filtering, ordering and decoration."""

    def _create(self, db, status, pickup_date):
        created = db.create_order(make_order_payload(pickup_date=pickup_date))
        if status != "received":
            db.orders.patch_order(created["id"], {"status": status})
        return created

    def test_default_hides_completed(self, temp_db, today):
        for status in OrderStatus:
            self._create(temp_db, status.value, "2024-01-30")

        statuses = {row["status"] for row in temp_db.orders.list_orders(today=today)}
        assert statuses == {"received", "paid", "in_progress", "ready_for_pickup"}

    def test_show_completed(self, temp_db, today):
        for status in OrderStatus:
            self._create(temp_db, status.value, "2024-01-30")
        rows = temp_db.orders.list_orders(show_completed=True, today=today)
        assert len(rows) == 6

    def test_status_filter(self, temp_db, today):
        self._create(temp_db, "paid", "2024-01-30")
        self._create(temp_db, "received", "2024-01-30")
        self._create(temp_db, "picked_up", "2024-01-30")

        rows = temp_db.orders.list_orders(status="paid", today=today)
        assert [row["status"] for row in rows] == ["paid"]

        rows = temp_db.orders.list_orders(status="picked_up", today=today)
        assert [row["status"] for row in rows] == ["picked_up"]

    def test_unknown_status_filter(self, temp_db):
        with pytest.raises(ValidationError):
            temp_db.orders.list_orders(status="lost")

    def test_ordered_by_pickup_date_then_number(self, temp_db, today):
        late = self._create(temp_db, "received", "2024-02-02")
        early_a = self._create(temp_db, "received", "2024-01-29")
        early_b = self._create(temp_db, "received", "2024-01-29")

        numbers = [row["order_number"] for row in temp_db.orders.list_orders(today=today)]
        assert numbers == [early_a["order_number"], early_b["order_number"], late["order_number"]]

    def test_pickup_date_formatted(self, temp_db, today):
        self._create(temp_db, "received", "2024-01-28")
        row = temp_db.orders.list_orders(today=today)[0]
        assert row["pickup_date_formatted"] == "Sun - Jan 28"

    def test_is_ready_now_only_for_past_pickup(self, temp_db, today):
        past = self._create(temp_db, "ready_for_pickup", (today - timedelta(days=1)).isoformat())
        due_today = self._create(temp_db, "ready_for_pickup", today.isoformat())
        waiting = self._create(temp_db, "in_progress", (today - timedelta(days=3)).isoformat())

        flags = {row["id"]: row["is_ready_now"] for row in temp_db.orders.list_orders(today=today)}
        assert flags == {past["id"]: True, due_today["id"]: False, waiting["id"]: False}

    def test_patch_to_ready_then_list(self, temp_db, today):
        created = self._create(temp_db, "in_progress", "2024-01-20")
        temp_db.orders.patch_order(created["id"], {"status": "ready_for_pickup"})
        row = temp_db.orders.list_orders(today=today)[0]
        assert row["is_ready_now"] is True


class TestGetOrder:

    def test_get_order(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        order = temp_db.orders.get_order(created["id"])
        assert order["order_number"] == 1001
        assert order["customer_last_name"] == "Lovelace"

    def test_missing_order(self, temp_db):
        with pytest.raises(NotFoundError, match="Order not found"):
            temp_db.orders.get_order(404)


class TestPatchOrder:
    """Test OrderRepository.patch_order()."""

    def test_only_recognised_fields_are_applied(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        updates = temp_db.orders.patch_order(created["id"], {
            "status": "paid",
            "notes": "Paid cash",
            "customer_first_name": "Mallory",
        })

        assert set(updates) == {"status", "notes", "updated_at"}
        order = temp_db.orders.get_order(created["id"])
        assert order["status"] == "paid"
        assert order["notes"] == "Paid cash"
        assert order["customer_first_name"] == "Ada"

    def test_pickup_fields(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        updates = temp_db.orders.patch_order(created["id"], {
            "pickup_date": "2024-02-01", "pickup_time": "15:00",
        })
        assert updates["pickup_date"] == "2024-02-01"
        order = temp_db.orders.get_order(created["id"])
        assert order["pickup_time"] == "15:00"

    def test_updated_at_is_refreshed(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        before = temp_db.orders.get_order(created["id"])["updated_at"]
        updates = temp_db.orders.patch_order(created["id"], {"notes": "x"})
        assert updates["updated_at"] >= before

    def test_no_recognised_fields(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        with pytest.raises(ValidationError, match="No valid fields to update"):
            temp_db.orders.patch_order(created["id"], {"copies": 5})

    def test_unknown_status(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        with pytest.raises(ValidationError):
            temp_db.orders.patch_order(created["id"], {"status": "shipped"})

    def test_missing_order(self, temp_db):
        with pytest.raises(NotFoundError):
            temp_db.orders.patch_order(404, {"status": "paid"})

    def test_free_transitions_by_default(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        temp_db.orders.patch_order(created["id"], {"status": "picked_up"})
        temp_db.orders.patch_order(created["id"], {"status": "received"})
        assert temp_db.orders.get_order(created["id"])["status"] == "received"


class TestTransitionPolicy:
    """Test the strict lifecycle policy."""

    def test_strict_policy_allows_lifecycle(self, temp_db):
        repo = OrderRepository(temp_db.conn, policy=TransitionPolicy.strict())
        created = repo.create_order(make_order_payload())
        for status in ("paid", "in_progress", "ready_for_pickup", "picked_up"):
            repo.patch_order(created["id"], {"status": status})
        assert repo.get_order(created["id"])["status"] == "picked_up"

    def test_strict_policy_rejects_skips(self, temp_db):
        repo = OrderRepository(temp_db.conn, policy=TransitionPolicy.strict())
        created = repo.create_order(make_order_payload())
        with pytest.raises(ValidationError, match="Cannot change status"):
            repo.patch_order(created["id"], {"status": "picked_up"})

    def test_terminal_states_are_final(self):
        policy = TransitionPolicy(LIFECYCLE_TRANSITIONS)
        with pytest.raises(ValidationError):
            policy.check("abandoned", "received")
        assert policy.check("abandoned", "abandoned") is OrderStatus.ABANDONED

    def test_abandon_from_any_active_state(self):
        policy = TransitionPolicy.strict()
        for status in ("received", "paid", "in_progress", "ready_for_pickup"):
            assert policy.check(status, "abandoned") is OrderStatus.ABANDONED


class TestReplaceOrder:
    """Test OrderRepository.replace_order()."""

    def test_overwrites_mutable_fields(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        temp_db.orders.replace_order(created["id"], make_order_payload(
            customer_first_name="Grace",
            status="in_progress",
            copies=10,
            final_price="12.50",
            rush_order="true",
        ))

        order = temp_db.orders.get_order(created["id"])
        assert order["customer_first_name"] == "Grace"
        assert order["status"] == "in_progress"
        assert order["copies"] == 10
        assert order["final_price"] == pytest.approx(12.5)
        assert order["rush_order"] is True
        assert order["order_number"] == created["order_number"]

    def test_pickup_date_not_required(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        temp_db.orders.replace_order(created["id"], make_order_payload(pickup_date=None))
        assert temp_db.orders.get_order(created["id"])["pickup_date"] is None

    def test_same_validation_as_create(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        with pytest.raises(ValidationError):
            temp_db.orders.replace_order(created["id"], make_order_payload(customer_email="bad"))
        assert temp_db.orders.get_order(created["id"])["customer_email"] == "ada@example.com"

    def test_missing_order(self, temp_db):
        with pytest.raises(NotFoundError):
            temp_db.orders.replace_order(404, make_order_payload())


class TestDeleteOrder:

    def test_delete(self, temp_db):
        created = temp_db.create_order(make_order_payload())
        temp_db.orders.delete_order(created["id"])
        with pytest.raises(NotFoundError):
            temp_db.orders.get_order(created["id"])

    def test_delete_missing(self, temp_db):
        with pytest.raises(NotFoundError):
            temp_db.orders.delete_order(404)


class TestSummaryStats:
    """Test OrderRepository.summary_stats()."""

    def test_empty_store(self, temp_db):
        assert temp_db.orders.summary_stats() == {
            "received": 0, "paid": 0, "in_progress": 0, "ready_for_pickup": 0,
        }

    def test_counts_active_statuses_only(self, temp_db):
        for status in ("received", "received", "paid", "picked_up", "abandoned"):
            created = temp_db.create_order(make_order_payload())
            temp_db.orders.patch_order(created["id"], {"status": status})

        assert temp_db.orders.summary_stats() == {
            "received": 2, "paid": 1, "in_progress": 0, "ready_for_pickup": 0,
        }


class TestExportRows:

    def test_newest_first(self, temp_db):
        first = temp_db.create_order(make_order_payload())
        second = temp_db.create_order(make_order_payload())
        rows = temp_db.orders.export_rows()
        assert [row["id"] for row in rows] == [second["id"], first["id"]]
