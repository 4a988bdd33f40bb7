"""通用 CRUD 基类。

所有仓库继承 BaseCRUD，获得会话/事务访问、按ID读写和常用的输入解析工具。
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Type

from sqlalchemy.orm import Session

from .connection import DatabaseConnection
from .errors import NotFoundError, ValidationError


class BaseCRUD:
    """通用 CRUD 能力。

    Attributes:
        conn: 共享的数据库连接管理器。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        self.conn = conn

    def _get_session(self) -> Session:
        return self.conn.get_session()

    def _transaction(self):
        return self.conn.transaction()

    def get_by_id(self, model: Type, record_id: int,
                  session: Optional[Session] = None) -> Optional[Any]:
        """按主键获取记录，不存在返回 None。"""
        if session is not None:
            return session.get(model, record_id)
        with self._get_session() as sess:
            return sess.get(model, record_id)

    def require_by_id(self, model: Type, record_id: int,
                      session: Session, label: str = "Record") -> Any:
        """按主键获取记录，不存在抛出 NotFoundError。"""
        record = session.get(model, record_id)
        if record is None:
            raise NotFoundError(f"{label} not found")
        return record

    def get_all(self, model: Type, filters: Optional[Dict[str, Any]] = None,
                order_by: Optional[List[Any]] = None,
                session: Optional[Session] = None) -> List[Any]:
        """查询全部记录（可选等值过滤与排序）。"""
        def _query(sess):
            query = sess.query(model)
            if filters:
                query = query.filter_by(**filters)
            if order_by:
                query = query.order_by(*order_by)
            return query.all()

        if session is not None:
            return _query(session)
        with self._get_session() as sess:
            return _query(sess)

    # ========== 输入解析 ==========

    @staticmethod
    def _parse_date(value: Any, field: str) -> Optional[date]:
        """解析日期，支持 date/datetime 对象与 ``YYYY-MM-DD`` 字符串。

        Raises:
            ValidationError: 格式无效。
        """
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()
        except ValueError:
            raise ValidationError(
                f"Invalid {field}",
                [{"field": field, "message": "Date must use YYYY-MM-DD format"}],
            ) from None

    @staticmethod
    def _parse_int(value: Any, field: str) -> int:
        """解析整数，接受 int 与整数字符串（bool 不算整数）。"""
        if isinstance(value, bool):
            raise ValidationError(
                f"Invalid {field}",
                [{"field": field, "message": f"{field} must be an integer"}],
            )
        if isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except (TypeError, ValueError):
            raise ValidationError(
                f"Invalid {field}",
                [{"field": field, "message": f"{field} must be an integer"}],
            ) from None

    @staticmethod
    def _coerce_bool(value: Any) -> bool:
        """把各种真值表示转换为布尔值（"true"/"1"/"yes"/"on"、1、True）。"""
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes", "on")
        return bool(value)
