"""印刷店业务服务 - 数据操作与实时通知的编排层

每个修改类操作按固定顺序执行：校验 → 提交到数据库 → 发布事件。
事件只在提交成功之后发布；广播失败由 EventBroadcaster 吞掉，
不会影响已经成功的操作，也不会抛给调用方。

Web 路由、定时任务和脚本都通过本服务访问业务能力，
传输方式（WebSocket、终端等）只体现在注册到广播器的观察者上。
"""
from typing import Any, Dict, List, Optional

from loguru import logger

from database import DatabaseManager
from database.models import Catalog
from database.setting_repos import plain_value
from interface.base import EventType
from interface.manager import EventBroadcaster


class PrintShopService:
    """印刷店业务服务

    Attributes:
        db: 数据库管理器
        broadcaster: 事件广播器
    """

    def __init__(self, db: DatabaseManager,
                 broadcaster: Optional[EventBroadcaster] = None):
        self.db = db
        self.broadcaster = broadcaster or EventBroadcaster()

    def _publish(self, event_type: EventType, payload: Dict[str, Any]) -> None:
        self.broadcaster.publish(event_type, payload)

    # ========== 印刷选项 ==========

    def list_options(self) -> Dict[str, List[Dict[str, Any]]]:
        return self.db.options.list_options()

    def list_combinations(self) -> List[Dict[str, Any]]:
        return self.db.combinations.list_combinations()

    def add_option(self, catalog: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """新增选项并扩展组合矩阵

        Returns:
            ``{"id", "name", "message", "combinations_created"}``；
            矩阵扩展失败（非原子模式）时额外包含 ``warning``
        """
        catalog = Catalog.resolve(catalog)
        result = self.db.options.add_option(
            catalog, data.get("display_name"), data.get("sort_order", 0)
        )
        response = {
            "id": result.id,
            "name": result.name,
            "message": f"{catalog.label} added successfully",
            "combinations_created": result.combinations_created,
        }
        if result.warning:
            response["warning"] = result.warning
        self._publish(EventType.OPTIONS_UPDATED, {
            "catalog": catalog.value, "optionId": result.id, "action": "created",
        })
        return response

    def update_option(self, catalog: str, option_id: int,
                      data: Dict[str, Any]) -> Dict[str, Any]:
        catalog = Catalog.resolve(catalog)
        self.db.options.update_option(catalog, option_id, data)
        self._publish(EventType.OPTIONS_UPDATED, {
            "catalog": catalog.value, "optionId": option_id, "action": "updated",
        })
        return {"message": f"{catalog.label} updated successfully"}

    def delete_option(self, catalog: str, option_id: int) -> Dict[str, Any]:
        """删除选项（同一事务中级联删除组合）"""
        catalog = Catalog.resolve(catalog)
        removed = self.db.options.delete_option(catalog, option_id)
        self._publish(EventType.OPTIONS_UPDATED, {
            "catalog": catalog.value, "optionId": option_id, "action": "deleted",
        })
        return {
            "message": f"{catalog.label} deleted successfully",
            "combinations_removed": removed,
        }

    def update_combination(self, combination_id: int,
                           data: Dict[str, Any]) -> Dict[str, Any]:
        changes = self.db.combinations.update_combination(combination_id, data)
        self._publish(EventType.COMBINATION_UPDATED, {
            "combinationId": combination_id, "updates": changes,
        })
        return {"message": "Combination updated successfully"}

    def repair_matrix(self) -> Dict[str, int]:
        """修复组合矩阵，有变更时通知前端刷新"""
        result = self.db.repair_matrix()
        if result["inserted"] or result["orphans_removed"]:
            self._publish(EventType.OPTIONS_UPDATED, {
                "catalog": None, "optionId": None, "action": "repaired",
            })
        return result

    async def scheduled_repair(self) -> None:
        """定时任务入口：修复矩阵，失败只记录日志"""
        try:
            result = self.repair_matrix()
            logger.info(f"定时矩阵修复完成: {result}")
        except Exception as e:
            logger.error(f"定时矩阵修复失败: {e}")

    # ========== 订单 ==========

    def list_orders(self, status: Optional[str] = None,
                    show_completed: bool = False) -> List[Dict[str, Any]]:
        return self.db.orders.list_orders(status=status, show_completed=show_completed)

    def get_order(self, order_id: int) -> Dict[str, Any]:
        return self.db.orders.get_order(order_id)

    def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """创建订单

        Returns:
            ``{"orderId", "orderNumber", "message"}``
        """
        created = self.db.orders.create_order(payload)
        self._publish(EventType.ORDER_CREATED, {
            "orderId": created["id"], "orderNumber": created["order_number"],
        })
        return {
            "orderId": created["id"],
            "orderNumber": created["order_number"],
            "message": "Order created successfully",
        }

    def patch_order(self, order_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        updates = self.db.orders.patch_order(order_id, payload)
        self._publish(EventType.ORDER_UPDATED, {"orderId": order_id, "updates": updates})
        return {"message": "Order updated successfully", "updates": updates}

    def replace_order(self, order_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.db.orders.replace_order(order_id, payload)
        self._publish(EventType.ORDER_UPDATED, {"orderId": order_id})
        return {"message": "Order updated successfully"}

    def delete_order(self, order_id: int) -> Dict[str, Any]:
        self.db.orders.delete_order(order_id)
        self._publish(EventType.ORDER_DELETED, {"orderId": order_id})
        return {"message": "Order deleted successfully"}

    def order_stats(self) -> Dict[str, int]:
        return self.db.orders.summary_stats()

    def export_orders(self) -> List[Dict[str, Any]]:
        return self.db.orders.export_rows()

    # ========== 设置 ==========

    def get_settings(self) -> Dict[str, Any]:
        return {
            key: plain_value(value)
            for key, value in self.db.shop_settings.get_all().items()
        }

    def get_setting(self, key: str) -> Dict[str, Any]:
        return {"key": key, "value": plain_value(self.db.shop_settings.get(key))}

    def update_settings(self, values: Dict[str, Any]) -> Dict[str, Any]:
        self.db.shop_settings.update_many(values)
        self._publish(EventType.SETTINGS_UPDATED, dict(values))
        return {"message": "Settings updated successfully"}

    def update_setting(self, key: str, value: Any) -> Dict[str, Any]:
        self.db.shop_settings.update_one(key, value)
        self._publish(EventType.SETTING_UPDATED, {"key": key, "value": value})
        return {"message": "Setting updated successfully"}
