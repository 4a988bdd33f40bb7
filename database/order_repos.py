"""订单仓库 - 订单记录与状态机的数据访问层。

负责订单的创建（含订单编号分配）、查询与看板字段装饰、局部/整体更新、
删除、按状态统计以及导出。订单状态流转默认不做限制（员工可手动改为任意
状态），可通过 TransitionPolicy 切换为严格的生命周期表。
"""
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from loguru import logger
from sqlalchemy import func, update
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .errors import ConflictError, NotFoundError, ValidationError
from .models import (
    ACTIVE_STATUSES, TERMINAL_STATUSES, Order, OrderSequence, OrderStatus, utcnow
)
from config.settings import settings

ORDER_SEQUENCE = "orders"

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# 必填的顾客字段：(字段名, 错误信息)
REQUIRED_CUSTOMER_FIELDS = (
    ("customer_first_name", "First name is required"),
    ("customer_last_name", "Last name is required"),
    ("customer_phone", "Phone is required"),
    ("customer_address", "Address is required"),
)

# 局部更新（看板内联编辑）允许的字段
PATCHABLE_FIELDS = ("status", "pickup_date", "pickup_time", "notes")

# 严格模式下的状态流转表
LIFECYCLE_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.RECEIVED: {OrderStatus.PAID, OrderStatus.IN_PROGRESS, OrderStatus.ABANDONED},
    OrderStatus.PAID: {OrderStatus.IN_PROGRESS, OrderStatus.ABANDONED},
    OrderStatus.IN_PROGRESS: {OrderStatus.READY_FOR_PICKUP, OrderStatus.ABANDONED},
    OrderStatus.READY_FOR_PICKUP: {OrderStatus.PICKED_UP, OrderStatus.ABANDONED},
    OrderStatus.PICKED_UP: set(),
    OrderStatus.ABANDONED: set(),
}


class TransitionPolicy:
    """订单状态流转策略。

    Args:
        allowed: 允许的流转表 ``{当前状态: {目标状态, ...}}``；
            为 None 时允许任意流转（员工手动覆盖）。
    """

    def __init__(self, allowed: Optional[Mapping[OrderStatus, Set[OrderStatus]]] = None) -> None:
        self.allowed = allowed

    @classmethod
    def strict(cls) -> "TransitionPolicy":
        return cls(LIFECYCLE_TRANSITIONS)

    def check(self, current: Union[str, OrderStatus], target: Union[str, OrderStatus]) -> OrderStatus:
        """校验一次状态流转，返回目标状态。

        Raises:
            ValidationError: 目标状态未知，或严格模式下不允许该流转。
        """
        target = OrderStatus.parse(target)
        if self.allowed is None:
            return target
        current = OrderStatus.parse(current)
        if target != current and target not in self.allowed.get(current, set()):
            raise ValidationError(
                f"Cannot change status from {current.value} to {target.value}",
                [{"field": "status", "message": "Status transition not allowed"}],
            )
        return target


class OrderRepository(BaseCRUD):
    """订单 仓库。

    Attributes:
        policy: 状态流转策略。
        number_start: 空库时的第一个订单编号。
        number_retries: 编号冲突时的最大尝试次数。
    """

    def __init__(self, conn: DatabaseConnection,
                 policy: Optional[TransitionPolicy] = None,
                 number_start: Optional[int] = None,
                 number_retries: Optional[int] = None) -> None:
        super().__init__(conn)
        if policy is None:
            policy = (
                TransitionPolicy.strict() if settings.enforce_status_transitions
                else TransitionPolicy()
            )
        self.policy = policy
        self.number_start = number_start or settings.order_number_start
        self.number_retries = max(1, number_retries or settings.order_number_retries)

    # ========== 创建 ==========

    def create_order(self, payload: Dict[str, Any]) -> Dict[str, int]:
        """创建订单。

        编号分配与插入在同一事务内完成；遇到唯一性冲突时重试，
        重试用尽后抛出 ConflictError，绝不会产生重复编号。

        Args:
            payload: 订单数据字典，顾客字段与 pickup_date 必填，其余可选。

        Returns:
            ``{"id": 订单ID, "order_number": 订单编号}``。

        Raises:
            ValidationError: 必填字段缺失或格式错误。
            ConflictError: 编号冲突重试仍失败。
        """
        fields = self._build_fields(payload, require_pickup_date=True)
        fields["status"] = self.policy.check(
            OrderStatus.RECEIVED, payload.get("status") or OrderStatus.RECEIVED
        ).value
        fields["created_by"] = payload.get("created_by") or "public"
        fields["file_path"] = payload.get("file_path") or ""
        fields["file_name"] = payload.get("file_name") or ""
        fields["file_size"] = self._parse_int(payload.get("file_size") or 0, "file_size")

        for attempt in range(1, self.number_retries + 1):
            try:
                with self._transaction() as session:
                    order_number = self._next_order_number(session)
                    order = Order(order_number=order_number, **fields)
                    session.add(order)
                    session.flush()
                    order_id = order.id
                break
            except ConflictError:
                if attempt == self.number_retries:
                    logger.error(f"订单编号分配冲突，已重试 {attempt} 次")
                    raise
                logger.warning(f"订单编号冲突，重试 ({attempt}/{self.number_retries})")

        logger.info(f"订单已创建: id={order_id} order_number={order_number}")
        return {"id": order_id, "order_number": order_number}

    def _next_order_number(self, session: Session) -> int:
        """在当前事务中分配下一个订单编号。

        序列行先递增（同时取得写锁），结果不小于当前最大编号 + 1。
        序列只增不减，删除订单后编号不会被复用。
        """
        updated = session.execute(
            update(OrderSequence)
            .where(OrderSequence.name == ORDER_SEQUENCE)
            .values(last_value=OrderSequence.last_value + 1)
        ).rowcount
        current_max = session.query(func.max(Order.order_number)).scalar() or 0

        if not updated:
            next_number = max(current_max + 1, self.number_start)
            session.add(OrderSequence(name=ORDER_SEQUENCE, last_value=next_number))
            session.flush()
            return next_number

        sequence = session.get(OrderSequence, ORDER_SEQUENCE, populate_existing=True)
        if sequence.last_value <= current_max:
            sequence.last_value = current_max + 1
            session.flush()
        return sequence.last_value

    # ========== 查询 ==========

    def get_order(self, order_id: int) -> Dict[str, Any]:
        """获取单个订单。

        Raises:
            NotFoundError: 订单不存在。
        """
        with self._get_session() as session:
            order = self.require_by_id(Order, order_id, session, "Order")
            return self._to_dict(order)

    def list_orders(self, status: Optional[str] = None,
                    show_completed: bool = False,
                    today: Optional[date] = None) -> List[Dict[str, Any]]:
        """查询订单列表（看板与后台使用）。

        Args:
            status: 只返回该状态的订单（优先于 show_completed）。
            show_completed: 为 False 时隐藏 picked_up / abandoned。
            today: 计算 is_ready_now 使用的当天日期，默认 date.today()。

        Returns:
            按 (pickup_date, order_number) 升序排列的订单字典列表，附加
            ``pickup_date_formatted`` 与 ``is_ready_now``。
        """
        today = today or date.today()
        with self._get_session() as session:
            query = session.query(Order)
            if status:
                query = query.filter(Order.status == OrderStatus.parse(status).value)
            elif not show_completed:
                query = query.filter(Order.status.notin_([s.value for s in TERMINAL_STATUSES]))
            orders = query.order_by(Order.pickup_date.asc(), Order.order_number.asc()).all()
            return [self._decorate(self._to_dict(order), order, today) for order in orders]

    def export_rows(self) -> List[Dict[str, Any]]:
        """导出用：全部订单，按创建时间倒序。"""
        with self._get_session() as session:
            orders = session.query(Order).order_by(Order.created_at.desc(), Order.id.desc()).all()
            return [self._to_dict(order) for order in orders]

    def summary_stats(self) -> Dict[str, int]:
        """按状态统计进行中的订单数量。

        Returns:
            ``{"received": n, "paid": n, "in_progress": n, "ready_for_pickup": n}``，
            计数为 0 的状态也会出现。
        """
        stats = {status.value: 0 for status in ACTIVE_STATUSES}
        with self._get_session() as session:
            rows = (
                session.query(Order.status, func.count(Order.id))
                .filter(Order.status.notin_([s.value for s in TERMINAL_STATUSES]))
                .group_by(Order.status)
                .all()
            )
        for status, count in rows:
            if status in stats:
                stats[status] = count
        return stats

    # ========== 更新 / 删除 ==========

    def patch_order(self, order_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """局部更新订单（状态、取件日期/时间、备注），其他字段忽略。

        Returns:
            实际写入的字段（含 updated_at），值已序列化。

        Raises:
            ValidationError: 没有可识别的字段，或字段值无效。
            NotFoundError: 订单不存在。
        """
        updates = {field: payload[field] for field in PATCHABLE_FIELDS if payload.get(field) is not None}
        if not updates:
            raise ValidationError("No valid fields to update")
        if "pickup_date" in updates:
            updates["pickup_date"] = self._parse_date(updates["pickup_date"], "pickup_date")

        with self._transaction() as session:
            order = self.require_by_id(Order, order_id, session, "Order")
            if "status" in updates:
                updates["status"] = self.policy.check(order.status, updates["status"]).value
            updates["updated_at"] = utcnow()
            for field, value in updates.items():
                setattr(order, field, value)

        logger.info(f"订单 {order_id} 已局部更新: {sorted(updates)}")
        return {field: self._serialize(value) for field, value in updates.items()}

    def replace_order(self, order_id: int, payload: Dict[str, Any]) -> None:
        """整体更新订单的全部可变字段（顾客字段校验同创建）。

        Raises:
            ValidationError: 必填字段缺失或格式错误。
            NotFoundError: 订单不存在。
        """
        fields = self._build_fields(payload, require_pickup_date=False)
        fields["final_price"] = self._parse_money(payload.get("final_price"), "final_price")

        with self._transaction() as session:
            order = self.require_by_id(Order, order_id, session, "Order")
            fields["status"] = self.policy.check(
                order.status, payload.get("status") or OrderStatus.RECEIVED
            ).value
            fields["updated_at"] = utcnow()
            for field, value in fields.items():
                setattr(order, field, value)

        logger.info(f"订单 {order_id} 已整体更新")

    def delete_order(self, order_id: int) -> None:
        """删除订单（物理删除，编号不会被复用）。

        Raises:
            NotFoundError: 订单不存在。
        """
        with self._transaction() as session:
            deleted = session.query(Order).filter(Order.id == order_id).delete(
                synchronize_session=False
            )
            if not deleted:
                raise NotFoundError("Order not found")
        logger.info(f"订单 {order_id} 已删除")

    # ========== 内部工具 ==========

    def _build_fields(self, payload: Dict[str, Any],
                      require_pickup_date: bool) -> Dict[str, Any]:
        """校验并整理订单字段（创建与整体更新共用）。"""
        errors = []
        for field, message in REQUIRED_CUSTOMER_FIELDS:
            value = payload.get(field)
            if value is None or not str(value).strip():
                errors.append({"field": field, "message": message})
        email = str(payload.get("customer_email") or "").strip()
        if not EMAIL_PATTERN.match(email):
            errors.append({"field": "customer_email", "message": "Valid email is required"})
        if require_pickup_date and not payload.get("pickup_date"):
            errors.append({"field": "pickup_date", "message": "Pickup date is required"})
        if errors:
            raise ValidationError("Validation failed", errors)

        copies = self._parse_int(payload.get("copies") or 1, "copies")
        if copies < 1:
            raise ValidationError(
                "Invalid copies", [{"field": "copies", "message": "copies must be at least 1"}]
            )

        return {
            "customer_first_name": str(payload["customer_first_name"]).strip(),
            "customer_last_name": str(payload["customer_last_name"]).strip(),
            "customer_phone": str(payload["customer_phone"]).strip(),
            "customer_email": email,
            "customer_address": str(payload["customer_address"]).strip(),
            "order_description": payload.get("order_description") or "",
            "special_instructions": payload.get("special_instructions") or "",
            "pickup_date": self._parse_date(payload.get("pickup_date"), "pickup_date"),
            "pickup_time": payload.get("pickup_time") or "",
            "notes": payload.get("notes") or "",
            "copies": copies,
            "paper_size": payload.get("paper_size") or "",
            "paper_type": payload.get("paper_type") or "",
            "color_mode": payload.get("color_mode") or "",
            "double_sided": self._coerce_bool(payload.get("double_sided") or False),
            "binding_type": payload.get("binding_type") or "",
            "finishing_options": payload.get("finishing_options") or "",
            "rush_order": self._coerce_bool(payload.get("rush_order") or False),
            "estimated_price": self._parse_money(payload.get("estimated_price"), "estimated_price"),
            "print_ready": self._coerce_bool(payload.get("print_ready") or False),
        }

    @staticmethod
    def _parse_money(value: Any, field: str) -> Decimal:
        if value is None or value == "":
            return Decimal("0")
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(
                f"Invalid {field}", [{"field": field, "message": f"{field} must be a number"}]
            ) from None
        if not amount.is_finite() or amount < 0:
            raise ValidationError(
                f"Invalid {field}", [{"field": field, "message": f"{field} must be >= 0"}]
            )
        return amount

    @staticmethod
    def _serialize(value: Any) -> Any:
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, Decimal):
            return float(value)
        return value

    @classmethod
    def _to_dict(cls, order: Order) -> Dict[str, Any]:
        return {
            column.name: cls._serialize(getattr(order, column.name))
            for column in Order.__table__.columns
        }

    @staticmethod
    def _decorate(row: Dict[str, Any], order: Order, today: date) -> Dict[str, Any]:
        pickup_date = order.pickup_date
        row["pickup_date_formatted"] = (
            pickup_date.strftime("%a - %b %d") if pickup_date else None
        )
        row["is_ready_now"] = bool(
            order.status == OrderStatus.READY_FOR_PICKUP.value
            and pickup_date is not None
            and pickup_date < today
        )
        return row
