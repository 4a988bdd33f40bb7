"""选项目录仓库 - 纸张尺寸、纸张类型、颜色模式的数据访问层。

三个目录结构相同，由 Catalog 枚举区分。新增选项时自动生成唯一标识名
并扩展组合矩阵；删除选项时先级联删除引用它的组合。
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from .base_crud import BaseCRUD
from .combination_repos import CombinationRepository
from .connection import DatabaseConnection
from .errors import ConflictError, NotFoundError, PrintShopError, ValidationError
from .models import Catalog
from .slug import generate_unique_name
from config.settings import settings


@dataclass
class OptionCreateResult:
    """新增选项的结果。

    Attributes:
        id: 新选项ID。
        name: 生成的唯一标识名。
        catalog: 所属目录。
        combinations_created: 矩阵扩展新增的组合数量。
        warning: 选项已创建但矩阵扩展失败时的提示（仅非原子模式）。
    """
    id: int
    name: str
    catalog: Catalog
    combinations_created: int = 0
    warning: Optional[str] = None

    @property
    def matrix_complete(self) -> bool:
        return self.warning is None


class OptionRepository(BaseCRUD):
    """选项目录 仓库。

    Attributes:
        combinations: 组合矩阵仓库，用于扩展与级联删除。
        atomic_expansion: 为 True 时新增选项与矩阵扩展在同一事务中完成；
            为 False 时先提交选项，扩展失败只返回警告、不回滚选项。
        name_retries: 标识名唯一性冲突时的最大尝试次数。
    """

    def __init__(self, conn: DatabaseConnection,
                 combinations: CombinationRepository,
                 atomic_expansion: Optional[bool] = None,
                 name_retries: Optional[int] = None) -> None:
        super().__init__(conn)
        self.combinations = combinations
        self.atomic_expansion = (
            settings.atomic_option_expansion if atomic_expansion is None
            else atomic_expansion
        )
        self.name_retries = max(1, name_retries or settings.option_name_retries)

    def list_options(self) -> Dict[str, List[Dict[str, Any]]]:
        """获取三个目录的全部选项，各自按 (sort_order, name) 排序。

        Returns:
            ``{"paperSizes": [...], "paperTypes": [...], "colorModes": [...]}``。
        """
        keys = {
            Catalog.PAPER_SIZE: "paperSizes",
            Catalog.PAPER_TYPE: "paperTypes",
            Catalog.COLOR_MODE: "colorModes",
        }
        return {keys[catalog]: self.list_catalog(catalog) for catalog in Catalog}

    def list_catalog(self, catalog: Union[str, Catalog]) -> List[Dict[str, Any]]:
        """获取单个目录的选项列表。"""
        catalog = Catalog.resolve(catalog)
        model = catalog.model
        entries = self.get_all(model, order_by=[model.sort_order, model.name])
        return [self._to_dict(entry) for entry in entries]

    def add_option(self, catalog: Union[str, Catalog], display_name: str,
                   sort_order: Any = 0) -> OptionCreateResult:
        """新增选项并扩展组合矩阵。

        Args:
            catalog: 目标目录。
            display_name: 显示名称（必填）。
            sort_order: 展示顺序（整数，默认0）。

        Returns:
            OptionCreateResult。

        Raises:
            ValidationError: 显示名称为空或排序值不是整数。
            ConflictError: 标识名冲突重试仍失败。
            StorageError: 持久化失败（原子模式下包括矩阵扩展失败）。
        """
        catalog = Catalog.resolve(catalog)
        display_name = str(display_name).strip() if display_name is not None else ""
        if not display_name:
            raise ValidationError(
                "Display name is required",
                [{"field": "display_name", "message": "Display name is required"}],
            )
        sort_order = self._parse_int(sort_order if sort_order is not None else 0, "sort_order")

        for attempt in range(1, self.name_retries + 1):
            try:
                result = self._insert(catalog, display_name, sort_order)
                break
            except ConflictError:
                if attempt == self.name_retries:
                    raise
                logger.warning(
                    f"{catalog.label} 标识名冲突，重试 ({attempt}/{self.name_retries}): {display_name}"
                )

        if not self.atomic_expansion:
            try:
                result.combinations_created = self.combinations.expand(result.id, catalog)
            except PrintShopError as e:
                logger.error(f"{catalog.label} {result.id} 已创建，但组合矩阵扩展失败: {e}")
                result.warning = f"{catalog.label} added but failed to create combinations"

        logger.info(
            f"{catalog.label} 已新增: id={result.id} name={result.name} "
            f"新增组合={result.combinations_created}"
        )
        return result

    def _insert(self, catalog: Catalog, display_name: str,
                sort_order: int) -> OptionCreateResult:
        with self._transaction() as session:
            name = generate_unique_name(display_name, catalog.model, session)
            entry = catalog.model(name=name, display_name=display_name, sort_order=sort_order)
            session.add(entry)
            session.flush()
            result = OptionCreateResult(id=entry.id, name=name, catalog=catalog)
            if self.atomic_expansion:
                result.combinations_created = self.combinations.expand(
                    entry.id, catalog, session=session
                )
        return result

    def update_option(self, catalog: Union[str, Catalog], option_id: int,
                      updates: Dict[str, Any]) -> Dict[str, Any]:
        """更新选项的显示名称和/或排序值（标识名不可修改）。

        Raises:
            ValidationError: 没有可更新字段、显示名称为空或排序值无效。
            NotFoundError: 选项不存在。
        """
        catalog = Catalog.resolve(catalog)
        changes: Dict[str, Any] = {}
        if updates.get("display_name") is not None:
            display_name = str(updates["display_name"]).strip()
            if not display_name:
                raise ValidationError(
                    "Display name cannot be empty",
                    [{"field": "display_name", "message": "Display name cannot be empty"}],
                )
            changes["display_name"] = display_name
        if updates.get("sort_order") is not None:
            changes["sort_order"] = self._parse_int(updates["sort_order"], "sort_order")
        if not changes:
            raise ValidationError("No fields to update")

        with self._transaction() as session:
            entry = self.require_by_id(catalog.model, option_id, session, catalog.label)
            for field, value in changes.items():
                setattr(entry, field, value)

        logger.info(f"{catalog.label} {option_id} 已更新: {changes}")
        return changes

    def delete_option(self, catalog: Union[str, Catalog], option_id: int) -> int:
        """删除选项：同一事务中先删除引用它的组合，再删除选项本身。

        Returns:
            级联删除的组合数量。

        Raises:
            NotFoundError: 选项不存在（事务整体回滚）。
        """
        catalog = Catalog.resolve(catalog)
        with self._transaction() as session:
            removed = self.combinations.delete_for_option(option_id, catalog, session)
            deleted = (
                session.query(catalog.model)
                .filter(catalog.model.id == option_id)
                .delete(synchronize_session=False)
            )
            if not deleted:
                raise NotFoundError(f"{catalog.label} not found")

        logger.info(f"{catalog.label} {option_id} 已删除，级联删除 {removed} 个组合")
        return removed

    def count(self, catalog: Union[str, Catalog]) -> int:
        catalog = Catalog.resolve(catalog)
        with self._get_session() as session:
            return session.query(catalog.model).count()

    @staticmethod
    def _to_dict(entry) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "name": entry.name,
            "display_name": entry.display_name,
            "sort_order": entry.sort_order,
            "created_at": entry.created_at.isoformat() if entry.created_at else None,
        }
