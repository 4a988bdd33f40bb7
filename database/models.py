"""SQLAlchemy ORM 模型定义。

本模块定义了所有数据库表的ORM模型，包括：
- 三个印刷选项目录：纸张尺寸、纸张类型、颜色模式
- 选项组合矩阵：三个目录笛卡尔积中的每个组合单独定价
- 订单及订单编号序列
- 通用键值设置
"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Union

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Date, DateTime,
    DECIMAL, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

from .errors import ValidationError

# SQLAlchemy declarative base，所有模型都继承自此类
# 设置 __allow_unmapped__ = True 以兼容 SQLAlchemy 2.0 的类型注解要求
Base = declarative_base()
Base.__allow_unmapped__ = True


def utcnow() -> datetime:
    """当前 UTC 时间（naive），用于时间戳列。"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class OrderStatus(str, Enum):
    """订单状态。

    正常流转：received → paid → in_progress → ready_for_pickup → picked_up，
    任何未结束的状态都可以转为 abandoned。
    """
    RECEIVED = "received"
    PAID = "paid"
    IN_PROGRESS = "in_progress"
    READY_FOR_PICKUP = "ready_for_pickup"
    PICKED_UP = "picked_up"
    ABANDONED = "abandoned"

    @classmethod
    def parse(cls, value: Union[str, "OrderStatus"]) -> "OrderStatus":
        """解析状态字符串，未知状态抛出 ValidationError。"""
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                f"Invalid status: {value}",
                [{"field": "status", "message": f"Status must be one of: {', '.join(s.value for s in cls)}"}],
            ) from None


# 已结束的状态（看板与统计中默认隐藏）
TERMINAL_STATUSES = (OrderStatus.PICKED_UP, OrderStatus.ABANDONED)

# 进行中的状态（统计结果中总是全部出现）
ACTIVE_STATUSES = (
    OrderStatus.RECEIVED,
    OrderStatus.PAID,
    OrderStatus.IN_PROGRESS,
    OrderStatus.READY_FOR_PICKUP,
)


class OptionMixin:
    """三个选项目录共用的列。

    Attributes:
        id: 主键，自增整数，不复用。
        name: 目录内唯一的 URL 安全标识（由显示名称生成），创建后不可修改。
        display_name: 显示名称，可修改。
        sort_order: 展示顺序，相同时按 name 排序。
        created_at: 创建时间。
    """
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    display_name = Column(String(200), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)


class PaperSize(OptionMixin, Base):
    """纸张尺寸目录（Letter、A4 ...）。"""
    __tablename__ = "paper_sizes"


class PaperType(OptionMixin, Base):
    """纸张类型目录（Standard、Glossy ...）。"""
    __tablename__ = "paper_types"


class ColorMode(OptionMixin, Base):
    """颜色模式目录（Black & White、Color）。"""
    __tablename__ = "color_modes"


class Catalog(str, Enum):
    """选项目录（组合矩阵的一个维度）。"""
    PAPER_SIZE = "paper_size"
    PAPER_TYPE = "paper_type"
    COLOR_MODE = "color_mode"

    @classmethod
    def resolve(cls, value: Union[str, "Catalog"]) -> "Catalog":
        """解析目录名称，兼容 ``paper-sizes`` / ``paper_sizes`` / ``paper_size`` 等写法。

        Raises:
            ValidationError: 未知的目录名称。
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        if key.endswith("s"):
            key = key[:-1]
        try:
            return cls(key)
        except ValueError:
            raise ValidationError("Invalid option type") from None

    @property
    def model(self):
        """目录对应的 ORM 模型。"""
        return CATALOG_MODELS[self]

    @property
    def combination_column(self):
        """PrintCombination 中引用该目录的外键列。"""
        return getattr(PrintCombination, f"{self.value}_id")

    @property
    def label(self) -> str:
        """人类可读名称，如 ``Paper size``。"""
        return self.value.replace("_", " ").capitalize()


class PrintCombination(Base):
    """印刷选项组合表模型（矩阵中的一格）。

    每个 (纸张尺寸, 纸张类型, 颜色模式) 三元组对应唯一一行，
    独立维护价格与可用状态。矩阵必须始终完整：每个现存三元组恰有一行，
    且不存在引用已删除选项的行。

    Attributes:
        id: 主键，自增整数。
        paper_size_id: 纸张尺寸ID，外键。
        paper_type_id: 纸张类型ID，外键。
        color_mode_id: 颜色模式ID，外键。
        price: 单价，DECIMAL(10,2)，非负。
        is_available: 是否可选，默认True。
        created_at: 创建时间。
        updated_at: 更新时间。

    Table Args:
        UniqueConstraint: (paper_size_id, paper_type_id, color_mode_id) 唯一约束。
    """
    __tablename__ = "print_combinations"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    paper_size_id: int = Column(Integer, ForeignKey("paper_sizes.id"), nullable=False)
    paper_type_id: int = Column(Integer, ForeignKey("paper_types.id"), nullable=False)
    color_mode_id: int = Column(Integer, ForeignKey("color_modes.id"), nullable=False)
    price: float = Column(DECIMAL(10, 2), nullable=False, default=0)
    is_available: bool = Column(Boolean, nullable=False, default=True)
    created_at: datetime = Column(DateTime, default=utcnow)
    updated_at: datetime = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    paper_size: "PaperSize" = relationship("PaperSize")
    paper_type: "PaperType" = relationship("PaperType")
    color_mode: "ColorMode" = relationship("ColorMode")

    __table_args__ = (
        UniqueConstraint("paper_size_id", "paper_type_id", "color_mode_id",
                         name="uq_print_combination"),
    )


CATALOG_MODELS = {
    Catalog.PAPER_SIZE: PaperSize,
    Catalog.PAPER_TYPE: PaperType,
    Catalog.COLOR_MODE: ColorMode,
}


class Order(Base):
    """订单表模型（核心业务表）。

    纸张尺寸/类型/颜色模式以提交时的显示文本快照保存，不是外键；
    价格在提交时锁定到 estimated_price / final_price。

    Attributes:
        id: 主键，自增整数。
        order_number: 面向顾客的订单编号，唯一，只分配一次且永不复用。
        customer_*: 顾客信息，创建时必填。
        status: 订单状态，见 OrderStatus，默认 received。
        pickup_date / pickup_time: 取件日期与时间，员工可修改。
        created_by: 创建来源（public / admin）。
        file_*: 上传文件引用。
        copies ~ print_ready: 印刷作业属性。
        created_at / updated_at: 时间戳，每次修改都会刷新 updated_at。
    """
    __tablename__ = "orders"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    order_number: int = Column(Integer, nullable=False, unique=True)
    customer_first_name: str = Column(String(100), nullable=False)
    customer_last_name: str = Column(String(100), nullable=False)
    customer_phone: str = Column(String(50), nullable=False)
    customer_email: str = Column(String(200), nullable=False)
    customer_address: str = Column(Text, nullable=False)
    order_description: Optional[str] = Column(Text, default="")
    special_instructions: Optional[str] = Column(Text, default="")
    status: str = Column(String(20), nullable=False, default=OrderStatus.RECEIVED.value)
    pickup_date: Optional[date] = Column(Date)
    pickup_time: Optional[str] = Column(String(20), default="")
    created_by: str = Column(String(50), default="public")
    notes: Optional[str] = Column(Text, default="")
    file_path: Optional[str] = Column(String(255), default="")
    file_name: Optional[str] = Column(String(255), default="")
    file_size: int = Column(Integer, default=0)
    copies: int = Column(Integer, default=1)
    paper_size: Optional[str] = Column(String(200), default="")
    paper_type: Optional[str] = Column(String(200), default="")
    color_mode: Optional[str] = Column(String(200), default="")
    double_sided: bool = Column(Boolean, default=False)
    binding_type: Optional[str] = Column(String(100), default="")
    finishing_options: Optional[str] = Column(String(255), default="")
    rush_order: bool = Column(Boolean, default=False)
    estimated_price: Optional[float] = Column(DECIMAL(10, 2), default=0)
    final_price: Optional[float] = Column(DECIMAL(10, 2), default=0)
    print_ready: bool = Column(Boolean, default=False)
    created_at: datetime = Column(DateTime, default=utcnow)
    updated_at: datetime = Column(DateTime, default=utcnow)


class OrderSequence(Base):
    """订单编号序列表模型。

    在插入订单的同一事务中递增，编号只增不减，删除订单后也不会复用。

    Attributes:
        name: 序列名称，主键。
        last_value: 最近一次分配的编号。
    """
    __tablename__ = "order_sequences"

    name: str = Column(String(50), primary_key=True)
    last_value: int = Column(Integer, nullable=False)


class Setting(Base):
    """键值设置表模型。

    value 以文本保存，读取时先尝试 JSON 解码，失败则按原始文本返回。

    Attributes:
        id: 主键，自增整数。
        key: 设置键，唯一。
        value: 设置值（文本）。
        updated_at: 更新时间。
    """
    __tablename__ = "settings"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    key: str = Column(String(100), nullable=False, unique=True)
    value: str = Column(Text, nullable=False)
    updated_at: datetime = Column(DateTime, default=utcnow, onupdate=utcnow)
