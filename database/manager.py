"""数据库管理器 - 统一门面（Facade）。

DatabaseManager 是 database 模块的统一入口，组合了所有子仓库，
提供两套 API：

1. **子仓库访问**（细粒度）：
   通过 ``db.options``、``db.combinations``、``db.orders``、``db.shop_settings``
   直接访问子仓库。

2. **便捷方法**（粗粒度）：
   提供扁平化的方法（如 ``list_options()``、``create_order()``、``repair_matrix()``），
   返回字典/基本类型，适合上层业务代码和 API 调用。

所有子仓库共享同一个 DatabaseConnection，即同一个逻辑数据库。
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .combination_repos import CombinationRepository
from .connection import DatabaseConnection
from .option_repos import OptionCreateResult, OptionRepository
from .order_repos import OrderRepository, TransitionPolicy
from .setting_repos import SettingRepository


class DatabaseManager:
    """数据库管理器 - 统一门面。

    Attributes:
        conn: 数据库连接管理器。
        combinations: 组合矩阵仓库。
        options: 选项目录仓库。
        orders: 订单仓库。
        shop_settings: 键值设置仓库。

    Example::

        db = DatabaseManager("sqlite:///data/orders.db")
        db.create_tables()

        # 通过子仓库访问
        result = db.options.add_option("paper_size", "A5")

        # 通过便捷方法访问（返回字典）
        board = db.list_orders()
    """

    def __init__(self, database_url: Optional[str] = None,
                 busy_timeout: Optional[float] = None,
                 default_price: Optional[float] = None,
                 atomic_expansion: Optional[bool] = None,
                 transition_policy: Optional[TransitionPolicy] = None) -> None:
        """初始化数据库管理器。

        Args:
            database_url: 数据库连接URL。如果为None则使用settings配置。
            busy_timeout: 存储层命令超时（秒）。
            default_price: 矩阵扩展时新组合的默认单价。
            atomic_expansion: 新增选项与矩阵扩展是否在同一事务中完成。
            transition_policy: 订单状态流转策略。
        """
        # 基础设施层
        self.conn = DatabaseConnection(database_url, busy_timeout)

        # 印刷选项
        self.combinations = CombinationRepository(self.conn, default_price)
        self.options = OptionRepository(
            self.conn, self.combinations, atomic_expansion=atomic_expansion
        )

        # 订单与设置
        self.orders = OrderRepository(self.conn, policy=transition_policy)
        self.shop_settings = SettingRepository(self.conn)

    # ================================================================
    # 基础设施方法
    # ================================================================

    def create_tables(self) -> None:
        """创建所有数据库表（幂等操作）。"""
        self.conn.create_tables()

    def get_session(self) -> Session:
        """获取数据库会话。"""
        return self.conn.get_session()

    def transaction(self):
        """事务作用域，见 DatabaseConnection.transaction。"""
        return self.conn.transaction()

    @property
    def database_url(self) -> str:
        """数据库连接URL。"""
        return self.conn.database_url

    @property
    def engine(self):
        """SQLAlchemy 引擎对象。"""
        return self.conn.engine

    def close(self) -> None:
        """关闭数据库连接，释放所有资源。"""
        self.conn.close()

    # ================================================================
    # 便捷方法
    # ================================================================

    def list_options(self) -> Dict[str, List[Dict[str, Any]]]:
        return self.options.list_options()

    def add_option(self, catalog: str, display_name: str,
                   sort_order: Any = 0) -> OptionCreateResult:
        return self.options.add_option(catalog, display_name, sort_order)

    def list_combinations(self) -> List[Dict[str, Any]]:
        return self.combinations.list_combinations()

    def is_matrix_complete(self) -> bool:
        """矩阵是否完整（没有缺失的三元组）。"""
        return not self.combinations.missing_combinations()

    def repair_matrix(self) -> Dict[str, int]:
        """修复组合矩阵（幂等）。

        Returns:
            ``{"inserted": 新增数量, "orphans_removed": 清理数量}``。
        """
        return self.combinations.repair()

    def create_order(self, payload: Dict[str, Any]) -> Dict[str, int]:
        return self.orders.create_order(payload)

    def list_orders(self, status: Optional[str] = None,
                    show_completed: bool = False) -> List[Dict[str, Any]]:
        return self.orders.list_orders(status=status, show_completed=show_completed)
