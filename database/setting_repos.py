"""设置仓库 - 通用键值设置的数据访问层。

值以文本保存。读取时先尝试 JSON 解码，失败则按原始文本处理::

    '{"monday": {...}}'  ->  JsonValue({"monday": {...}})
    'dark'               ->  TextValue('dark')
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Union

from loguru import logger

from .base_crud import BaseCRUD
from .errors import NotFoundError, ValidationError
from .models import Setting, utcnow


@dataclass(frozen=True)
class JsonValue:
    """结构化设置值（JSON 文档解码结果）。"""
    document: Any


@dataclass(frozen=True)
class TextValue:
    """不透明文本设置值。"""
    text: str


SettingValue = Union[JsonValue, TextValue]


def decode_setting(raw: str) -> SettingValue:
    try:
        return JsonValue(json.loads(raw))
    except (TypeError, ValueError):
        return TextValue(raw)


def encode_setting(value: Any) -> str:
    """编码设置值：字符串原样保存，其他值（对象、列表、数字、布尔）写为 JSON。"""
    if isinstance(value, JsonValue):
        value = value.document
    elif isinstance(value, TextValue):
        return value.text
    if isinstance(value, str):
        return value
    return json.dumps(value)


def plain_value(value: SettingValue) -> Any:
    """取出设置值的普通 Python 表示（用于 JSON 响应）。"""
    return value.document if isinstance(value, JsonValue) else value.text


# 批量更新时校验的对象型设置
OBJECT_SETTINGS = ("status_colors", "business_hours", "pricing_table")

DISPLAY_MODES = ("dark", "light")


class SettingRepository(BaseCRUD):
    """设置 仓库。"""

    def get_all(self) -> Dict[str, SettingValue]:
        """获取全部设置（已解码）。"""
        with self._get_session() as session:
            rows = session.query(Setting).order_by(Setting.key).all()
            return {row.key: decode_setting(row.value) for row in rows}

    def get(self, key: str) -> SettingValue:
        """获取单个设置。

        Raises:
            NotFoundError: 设置不存在。
        """
        with self._get_session() as session:
            row = session.query(Setting).filter(Setting.key == key).first()
            if row is None:
                raise NotFoundError("Setting not found")
            return decode_setting(row.value)

    def update_many(self, values: Mapping[str, Any]) -> None:
        """批量写入设置（单个事务，先校验后写入）。

        Args:
            values: 设置键到值的映射，已存在的键覆盖，不存在的键新增。

        Raises:
            ValidationError: 已知设置的值不合法。
        """
        self.validate(values)
        with self._transaction() as session:
            for key, value in values.items():
                self._upsert(session, key, value)
        logger.info(f"设置已更新: {sorted(values)}")

    def update_one(self, key: str, value: Any) -> None:
        """写入单个设置（不存在则新增）。"""
        if not key:
            raise ValidationError("Setting key is required")
        with self._transaction() as session:
            self._upsert(session, key, value)
        logger.info(f"设置已更新: {key}")

    def insert_missing(self, defaults: Mapping[str, Any]) -> int:
        """只插入尚不存在的设置，已有的值保持不变。

        Returns:
            新插入的设置数量。
        """
        with self._transaction() as session:
            existing = {row[0] for row in session.query(Setting.key).all()}
            inserted = 0
            for key, value in defaults.items():
                if key in existing:
                    continue
                session.add(Setting(key=key, value=encode_setting(value), updated_at=utcnow()))
                inserted += 1
        return inserted

    @staticmethod
    def validate(values: Mapping[str, Any]) -> None:
        """校验批量更新中的已知设置，收集全部字段错误后一次抛出。"""
        errors = []
        if "display_mode" in values and values["display_mode"] not in DISPLAY_MODES:
            errors.append({"field": "display_mode", "message": "Display mode must be dark or light"})
        if "page_rotation_seconds" in values:
            seconds = values["page_rotation_seconds"]
            try:
                valid = not isinstance(seconds, (bool, float)) and 5 <= int(str(seconds).strip()) <= 60
            except ValueError:
                valid = False
            if not valid:
                errors.append({
                    "field": "page_rotation_seconds",
                    "message": "Page rotation must be between 5 and 60 seconds",
                })
        for key in OBJECT_SETTINGS:
            if key in values and not isinstance(values[key], dict):
                label = key.replace("_", " ").capitalize()
                errors.append({"field": key, "message": f"{label} must be an object"})
        if errors:
            raise ValidationError("Validation failed", errors)

    @staticmethod
    def _upsert(session, key: str, value: Any) -> None:
        row = session.query(Setting).filter(Setting.key == key).first()
        if row is None:
            session.add(Setting(key=key, value=encode_setting(value), updated_at=utcnow()))
        else:
            row.value = encode_setting(value)
            row.updated_at = utcnow()
