"""组合矩阵仓库 - 印刷选项笛卡尔积的数据访问层。

矩阵由 纸张尺寸 × 纸张类型 × 颜色模式 构成，每一格（PrintCombination）
独立维护价格与可用状态。本仓库负责：

- 新选项加入时按当前目录扩展矩阵（幂等，已存在的三元组直接跳过）
- 删除选项时级联删除引用它的组合
- 单格的价格/可用状态更新
- 修复：补齐缺失的三元组并清理孤儿组合，可随时安全执行
"""
import itertools
import math
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .errors import NotFoundError, ValidationError
from .models import (
    Catalog, ColorMode, PaperSize, PaperType, PrintCombination, utcnow
)
from config.settings import settings

Triple = Tuple[int, int, int]


class CombinationRepository(BaseCRUD):
    """印刷组合 仓库。

    Attributes:
        default_price: 扩展矩阵时新组合的默认单价。
    """

    def __init__(self, conn: DatabaseConnection,
                 default_price: Optional[float] = None) -> None:
        super().__init__(conn)
        self.default_price = (
            default_price if default_price is not None
            else settings.default_combination_price
        )

    # ========== 查询 ==========

    def list_combinations(self) -> List[Dict[str, Any]]:
        """获取全部组合及三个维度的显示名称。

        按 (纸张尺寸.sort_order, 纸张类型.sort_order, 颜色模式.sort_order) 排序。

        Returns:
            组合信息字典列表。
        """
        with self._get_session() as session:
            rows = (
                session.query(PrintCombination, PaperSize, PaperType, ColorMode)
                .join(PaperSize, PrintCombination.paper_size_id == PaperSize.id)
                .join(PaperType, PrintCombination.paper_type_id == PaperType.id)
                .join(ColorMode, PrintCombination.color_mode_id == ColorMode.id)
                .order_by(
                    PaperSize.sort_order, PaperType.sort_order,
                    ColorMode.sort_order, PrintCombination.id,
                )
                .all()
            )
            return [
                {
                    "id": combo.id,
                    "price": float(combo.price) if combo.price is not None else 0.0,
                    "is_available": bool(combo.is_available),
                    "paper_size_id": size.id,
                    "paper_size_name": size.name,
                    "paper_size_display": size.display_name,
                    "paper_type_id": paper_type.id,
                    "paper_type_name": paper_type.name,
                    "paper_type_display": paper_type.display_name,
                    "color_mode_id": color.id,
                    "color_mode_name": color.name,
                    "color_mode_display": color.display_name,
                }
                for combo, size, paper_type, color in rows
            ]

    def count(self) -> int:
        with self._get_session() as session:
            return session.query(PrintCombination).count()

    def missing_combinations(self, session: Optional[Session] = None) -> List[Triple]:
        """列出当前目录下缺失的三元组（为空即矩阵完整）。"""
        def _query(sess):
            expected = set(itertools.product(
                *(self._live_ids(sess, catalog) for catalog in Catalog)
            ))
            return sorted(expected - self._existing_triples(sess))

        if session is not None:
            return _query(session)
        with self._get_session() as sess:
            return _query(sess)

    # ========== 矩阵维护 ==========

    def expand(self, option_id: int, catalog: Union[str, Catalog],
               session: Optional[Session] = None,
               price: Optional[float] = None) -> int:
        """为新加入的选项扩展矩阵。

        用新选项ID与另外两个目录的当前全部ID做笛卡尔积，每个三元组插入一行
        （默认单价、可用）。已存在的三元组跳过，因此可以安全重试。

        Args:
            option_id: 新选项ID。
            catalog: 新选项所属目录（paper_size / paper_type / color_mode）。
            session: 外部会话（可选）。提供时只 flush，由外层事务提交。
            price: 新组合单价，默认 default_price。

        Returns:
            新插入的组合数量。

        Raises:
            NotFoundError: 选项不存在。
        """
        catalog = Catalog.resolve(catalog)
        if session is not None:
            return self._expand_in_session(option_id, catalog, session, price)
        with self._transaction() as sess:
            return self._expand_in_session(option_id, catalog, sess, price)

    def _expand_in_session(self, option_id: int, catalog: Catalog,
                           session: Session, price: Optional[float]) -> int:
        if self.get_by_id(catalog.model, option_id, session) is None:
            raise NotFoundError(f"{catalog.label} not found")

        dimensions = [
            [option_id] if other is catalog else self._live_ids(session, other)
            for other in Catalog
        ]
        existing = self._existing_triples(session, catalog, option_id)
        unit_price = Decimal(str(price if price is not None else self.default_price))

        inserted = 0
        for size_id, type_id, color_id in itertools.product(*dimensions):
            if (size_id, type_id, color_id) in existing:
                continue
            session.add(PrintCombination(
                paper_size_id=size_id,
                paper_type_id=type_id,
                color_mode_id=color_id,
                price=unit_price,
                is_available=True,
            ))
            inserted += 1
        session.flush()

        logger.debug(f"矩阵扩展: {catalog.value}={option_id} 新增 {inserted} 个组合")
        return inserted

    def delete_for_option(self, option_id: int, catalog: Union[str, Catalog],
                          session: Session) -> int:
        """删除引用指定选项的全部组合（级联删除的第一步）。

        Returns:
            删除的组合数量（0 不是错误）。
        """
        catalog = Catalog.resolve(catalog)
        return (
            session.query(PrintCombination)
            .filter(catalog.combination_column == option_id)
            .delete(synchronize_session=False)
        )

    def repair(self) -> Dict[str, int]:
        """修复矩阵：清理孤儿组合并补齐所有缺失的三元组。

        等价于对每个现存选项重新执行 expand，幂等，可随时执行。

        Returns:
            ``{"inserted": 新增数量, "orphans_removed": 清理数量}``。
        """
        with self._transaction() as session:
            orphans_removed = 0
            for catalog in Catalog:
                orphans_removed += (
                    session.query(PrintCombination)
                    .filter(~catalog.combination_column.in_(select(catalog.model.id)))
                    .delete(synchronize_session=False)
                )

            unit_price = Decimal(str(self.default_price))
            missing = self.missing_combinations(session)
            for size_id, type_id, color_id in missing:
                session.add(PrintCombination(
                    paper_size_id=size_id,
                    paper_type_id=type_id,
                    color_mode_id=color_id,
                    price=unit_price,
                    is_available=True,
                ))

        result = {"inserted": len(missing), "orphans_removed": orphans_removed}
        if missing or orphans_removed:
            logger.warning(f"矩阵修复完成: {result}")
        else:
            logger.info("矩阵完整，无需修复")
        return result

    # ========== 更新 ==========

    def update_combination(self, combination_id: int,
                           updates: Dict[str, Any]) -> Dict[str, Any]:
        """更新单个组合的价格和/或可用状态。

        Args:
            combination_id: 组合ID。
            updates: 可包含 ``price``（有限且 >= 0 的数字）与
                ``is_available``（任意真值表示，转换为布尔值）。

        Returns:
            实际写入的字段字典。

        Raises:
            ValidationError: 价格无效或没有可更新的字段。
            NotFoundError: 组合不存在。
        """
        changes: Dict[str, Any] = {}
        if updates.get("price") is not None:
            changes["price"] = self._parse_price(updates["price"])
        if updates.get("is_available") is not None:
            changes["is_available"] = self._coerce_bool(updates["is_available"])
        if not changes:
            raise ValidationError("No fields to update")

        with self._transaction() as session:
            combo = self.require_by_id(
                PrintCombination, combination_id, session, "Combination"
            )
            if "price" in changes:
                combo.price = Decimal(str(changes["price"]))
            if "is_available" in changes:
                combo.is_available = changes["is_available"]
            combo.updated_at = utcnow()

        logger.info(f"组合 {combination_id} 已更新: {changes}")
        return changes

    # ========== 内部工具 ==========

    @staticmethod
    def _parse_price(value: Any) -> float:
        error = ValidationError(
            "Price must be a positive number",
            [{"field": "price", "message": "Price must be a finite number >= 0"}],
        )
        if isinstance(value, bool):
            raise error
        try:
            price = float(value)
        except (TypeError, ValueError):
            raise error from None
        if not math.isfinite(price) or price < 0:
            raise error
        return price

    @staticmethod
    def _live_ids(session: Session, catalog: Catalog) -> List[int]:
        return [row[0] for row in session.query(catalog.model.id).all()]

    @staticmethod
    def _existing_triples(session: Session, catalog: Optional[Catalog] = None,
                          option_id: Optional[int] = None) -> set:
        query = session.query(
            PrintCombination.paper_size_id,
            PrintCombination.paper_type_id,
            PrintCombination.color_mode_id,
        )
        if catalog is not None:
            query = query.filter(catalog.combination_column == option_id)
        return {tuple(row) for row in query.all()}
