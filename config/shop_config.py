"""
门店配置接口 - 支持可替换的默认数据

新门店可以实现自己的配置，替换默认的纸张/颜色选项和显示设置。
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Any


class ShopConfig(ABC):
    """门店配置抽象基类"""

    @abstractmethod
    def get_paper_sizes(self) -> List[Dict[str, Any]]:
        """获取默认纸张尺寸列表"""
        pass

    @abstractmethod
    def get_paper_types(self) -> List[Dict[str, Any]]:
        """获取默认纸张类型列表"""
        pass

    @abstractmethod
    def get_color_modes(self) -> List[Dict[str, Any]]:
        """获取默认颜色模式列表"""
        pass

    @abstractmethod
    def get_default_settings(self) -> Dict[str, Any]:
        """获取默认显示/业务设置（键 -> 可 JSON 序列化的值）"""
        pass


class PrintShopConfig(ShopConfig):
    """标准打印店配置"""

    def get_paper_sizes(self) -> List[Dict[str, Any]]:
        return [
            {"display_name": 'Letter (8.5" x 11")', "sort_order": 1},
            {"display_name": 'Legal (8.5" x 14")', "sort_order": 2},
            {"display_name": "A4", "sort_order": 3},
            {"display_name": 'Tabloid (11" x 17")', "sort_order": 4},
        ]

    def get_paper_types(self) -> List[Dict[str, Any]]:
        return [
            {"display_name": "Standard", "sort_order": 1},
            {"display_name": "Glossy", "sort_order": 2},
            {"display_name": "Matte", "sort_order": 3},
            {"display_name": "Cardstock", "sort_order": 4},
        ]

    def get_color_modes(self) -> List[Dict[str, Any]]:
        return [
            {"display_name": "Black & White", "sort_order": 1},
            {"display_name": "Color", "sort_order": 2},
        ]

    def get_default_settings(self) -> Dict[str, Any]:
        weekday = {"open": "10:00", "close": "18:00"}
        return {
            "display_mode": "dark",
            "page_rotation_seconds": "10",
            "status_colors": {
                "received": "#3B82F6",
                "paid": "#10B981",
                "in_progress": "#F59E0B",
                "ready_for_pickup": "#FCD34D",
                "picked_up": "#6B7280",
                "abandoned": "#6B7280",
            },
            "business_hours": {
                "monday": dict(weekday),
                "tuesday": dict(weekday),
                "wednesday": dict(weekday),
                "thursday": dict(weekday),
                "friday": dict(weekday),
                "saturday": dict(weekday),
                "sunday": {"open": "00:00", "close": "00:00"},
            },
            "pricing_table": {
                "paper_sizes": {"letter": 0.10, "legal": 0.12, "a4": 0.11, "11x17": 0.20},
                "paper_types": {"standard": 0.00, "glossy": 0.05, "matte": 0.03, "cardstock": 0.10},
                "color_modes": {"black_white": 0.00, "color": 0.25},
                "binding": {"none": 0.00, "staples": 0.50, "spiral": 2.00, "comb": 1.50},
                "finishing": {"none": 0.00, "lamination": 1.00, "folding": 0.25, "cutting": 0.50},
            },
            "pickup_settings": {
                "pickup_start_time": "09:00",
                "pickup_end_time": "17:00",
                "pickup_days": {
                    "sunday": False,
                    "monday": True,
                    "tuesday": True,
                    "wednesday": True,
                    "thursday": True,
                    "friday": True,
                    "saturday": True,
                },
                "time_increment": "30",  # 15 / 30 / 60 分钟
                "unavailable_dates": [],  # 闭店日期，YYYY-MM-DD
            },
        }


# 全局门店配置实例（可以在 app.py 中替换）
shop_config: ShopConfig = PrintShopConfig()
