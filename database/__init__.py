"""数据库模块 - 印刷选项、组合矩阵、订单与设置的持久化

使用示例：
    ```python
    from database import DatabaseManager

    db = DatabaseManager("sqlite:///data/orders.db")
    db.create_tables()
    db.add_option("paper_size", 'Letter (8.5" x 11")', sort_order=1)
    ```
"""
from database.errors import (
    ConflictError, NotFoundError, PrintShopError, StorageError,
    UnauthorizedError, ValidationError,
)
from database.manager import DatabaseManager
from database.models import Catalog, OrderStatus

__all__ = [
    "DatabaseManager",
    "Catalog",
    "OrderStatus",
    # 错误
    "PrintShopError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
    "UnauthorizedError",
]
