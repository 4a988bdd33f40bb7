"""测试业务服务：数据操作与事件发布的编排"""
import pytest

from database.errors import NotFoundError, ValidationError
from database.models import Catalog, Order, PrintCombination
from interface.base import Event, Observer
from tests.conftest import RecordingObserver, make_order_payload


class ExplodingObserver(Observer):
    """投递时总是失败的观察者"""

    def deliver(self, event: Event):
        raise RuntimeError("display offline")


class ReadBackObserver(Observer):
    """收到事件时回读数据库，确认事件在提交之后发布"""

    def __init__(self, db):
        super().__init__("read-back")
        self.db = db
        self.seen = []

    def deliver(self, event: Event):
        if event.name == "order_created":
            with self.db.get_session() as session:
                order = session.get(Order, event.payload["orderId"])
                self.seen.append(order.order_number if order else None)


class TestOptionEvents:
    """选项与组合相关事件"""

    def test_add_option(self, service, recorder, small_catalog):
        result = service.add_option("paper-types", {"display_name": "Card Stock", "sort_order": 3})

        assert result["message"] == "Paper type added successfully"
        assert result["combinations_created"] == 4
        event = recorder.events[-1]
        assert event.name == "options_updated"
        assert event.payload == {"catalog": "paper_type", "optionId": result["id"], "action": "created"}

    def test_add_option_validation_publishes_nothing(self, service, recorder):
        with pytest.raises(ValidationError):
            service.add_option("paper-types", {"display_name": "   "})
        assert recorder.events == []

    def test_update_option(self, service, recorder, small_catalog):
        option_id = small_catalog[Catalog.COLOR_MODE][0]
        result = service.update_option("color_mode", option_id, {"display_name": "Grayscale"})

        assert result == {"message": "Color mode updated successfully"}
        assert recorder.events[-1].payload["action"] == "updated"

    def test_delete_option(self, service, recorder, small_catalog):
        option_id = small_catalog[Catalog.PAPER_SIZE][1]
        result = service.delete_option(Catalog.PAPER_SIZE, option_id)

        assert result["combinations_removed"] == 4
        assert recorder.events[-1].payload == {
            "catalog": "paper_size", "optionId": option_id, "action": "deleted",
        }

    def test_delete_missing_option(self, service, recorder):
        with pytest.raises(NotFoundError):
            service.delete_option("paper_size", 999)
        assert recorder.events == []

    def test_update_combination(self, service, recorder, small_catalog):
        combo_id = service.list_combinations()[0]["id"]
        service.update_combination(combo_id, {"is_available": "false"})

        event = recorder.events[-1]
        assert event.name == "combination_updated"
        assert event.payload == {"combinationId": combo_id, "updates": {"is_available": False}}


class TestMatrixRepair:
    """矩阵修复"""

    def test_complete_matrix_publishes_nothing(self, service, recorder, small_catalog):
        recorder.events.clear()
        assert service.repair_matrix() == {"inserted": 0, "orphans_removed": 0}
        assert recorder.events == []

    def test_repair_fills_gap_and_publishes(self, service, recorder, temp_db, small_catalog):
        with temp_db.transaction() as session:
            combo = session.query(PrintCombination).first()
            session.delete(combo)
        recorder.events.clear()

        assert service.repair_matrix() == {"inserted": 1, "orphans_removed": 0}
        assert recorder.names == ["options_updated"]
        assert recorder.events[0].payload["action"] == "repaired"
        assert temp_db.is_matrix_complete()

    @pytest.mark.asyncio
    async def test_scheduled_repair_swallows_errors(self, service, monkeypatch):
        def broken():
            raise RuntimeError("database is locked")

        monkeypatch.setattr(service.db, "repair_matrix", broken)
        await service.scheduled_repair()


class TestOrderEvents:
    """订单相关事件"""

    def test_create_order(self, service, recorder):
        result = service.create_order(make_order_payload())

        assert result["orderNumber"] == 1001
        assert recorder.names == ["order_created"]
        assert recorder.events[0].payload == {"orderId": result["orderId"], "orderNumber": 1001}

    def test_invalid_order_publishes_nothing(self, service, recorder):
        with pytest.raises(ValidationError):
            service.create_order(make_order_payload(customer_email="not-an-email"))
        assert recorder.events == []

    def test_event_follows_commit(self, service, broadcaster, temp_db):
        reader = ReadBackObserver(temp_db)
        broadcaster.register(reader)

        service.create_order(make_order_payload())
        service.create_order(make_order_payload())
        assert reader.seen == [1001, 1002]

    def test_failing_observer_does_not_break_operation(self, service, broadcaster, recorder):
        broadcaster.register(ExplodingObserver("broken"))
        result = service.create_order(make_order_payload())

        assert service.get_order(result["orderId"])["order_number"] == 1001
        assert recorder.names == ["order_created"]

    def test_patch_order(self, service, recorder):
        order_id = service.create_order(make_order_payload())["orderId"]
        result = service.patch_order(order_id, {"status": "in_progress", "notes": "Use blue stock"})

        assert result["updates"]["status"] == "in_progress"
        event = recorder.events[-1]
        assert event.name == "order_updated"
        assert event.payload["orderId"] == order_id
        assert event.payload["updates"]["notes"] == "Use blue stock"

    def test_replace_order(self, service, recorder):
        order_id = service.create_order(make_order_payload())["orderId"]
        service.replace_order(order_id, make_order_payload(copies=7))
        assert recorder.events[-1].payload == {"orderId": order_id}

    def test_delete_order(self, service, recorder):
        order_id = service.create_order(make_order_payload())["orderId"]
        service.delete_order(order_id)

        assert recorder.events[-1].name == "order_deleted"
        with pytest.raises(NotFoundError):
            service.get_order(order_id)

    def test_delete_missing_order_publishes_nothing(self, service, recorder):
        with pytest.raises(NotFoundError):
            service.delete_order(12345)
        assert recorder.events == []


class TestSettingEvents:
    """设置相关事件"""

    def test_update_settings(self, service, recorder):
        values = {"display_mode": "dark", "status_colors": {"paid": "#00ff00"}}
        service.update_settings(values)

        assert recorder.events[-1].name == "settings_updated"
        assert recorder.events[-1].payload == values
        assert service.get_settings()["status_colors"] == {"paid": "#00ff00"}

    def test_invalid_settings_publish_nothing(self, service, recorder):
        with pytest.raises(ValidationError):
            service.update_settings({"page_rotation_seconds": 90})
        assert recorder.events == []

    def test_update_setting(self, service, recorder):
        service.update_setting("shop_name", "Corner Print")

        assert recorder.events[-1].payload == {"key": "shop_name", "value": "Corner Print"}
        assert service.get_setting("shop_name") == {"key": "shop_name", "value": "Corner Print"}

    def test_late_observer_sees_only_new_events(self, service, broadcaster):
        service.update_setting("shop_name", "Corner Print")
        late = RecordingObserver("late")
        broadcaster.register(late)

        service.update_setting("shop_name", "Corner Print & Copy")
        assert len(late.events) == 1
