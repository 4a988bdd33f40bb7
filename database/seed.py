"""默认数据初始化。

- 三个选项目录全部为空时，通过 add_option 写入默认目录（同时扩展组合矩阵）
- 默认设置只插入缺失的键，不覆盖员工已修改的值
"""
from typing import Dict, Optional

from loguru import logger

from config.shop_config import ShopConfig, shop_config as default_shop_config
from .manager import DatabaseManager
from .models import Catalog


def seed_defaults(db: DatabaseManager,
                  config: Optional[ShopConfig] = None) -> Dict[str, int]:
    """写入默认目录与默认设置（幂等）。

    Args:
        db: 数据库管理器。
        config: 门店配置，默认使用全局 shop_config。

    Returns:
        ``{"options": 新增选项数, "settings": 新增设置数}``。
    """
    config = config or default_shop_config
    created_options = 0

    if all(db.options.count(catalog) == 0 for catalog in Catalog):
        defaults = {
            Catalog.PAPER_SIZE: config.get_paper_sizes(),
            Catalog.PAPER_TYPE: config.get_paper_types(),
            Catalog.COLOR_MODE: config.get_color_modes(),
        }
        for catalog, entries in defaults.items():
            for entry in entries:
                db.options.add_option(catalog, entry["display_name"], entry.get("sort_order", 0))
                created_options += 1
        logger.info(f"默认印刷选项已写入: {created_options} 个，组合 {db.combinations.count()} 个")
    else:
        logger.debug("选项目录非空，跳过默认选项")

    created_settings = db.shop_settings.insert_missing(config.get_default_settings())
    if created_settings:
        logger.info(f"默认设置已写入: {created_settings} 项")

    return {"options": created_options, "settings": created_settings}
