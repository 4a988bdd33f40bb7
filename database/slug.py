"""标识名（slug）生成。

把人类可读的显示名称转换为目录内唯一、URL 安全的标识名::

    'Letter (8.5" x 11")'  ->  'letter-85-x-11'
    第二次添加同名选项     ->  'letter-85-x-11-1'
"""
import re
from typing import Type

from sqlalchemy.orm import Session

FALLBACK_SLUG = "option"

_INVALID_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def slugify(display_name: str) -> str:
    """把显示名称转换为 URL 安全的基础标识名。

    小写化，去掉字母、数字、空白和连字符以外的字符，空白串替换为单个连字符，
    合并连续连字符并去掉首尾连字符。结果为空时返回 FALLBACK_SLUG。
    """
    slug = _INVALID_CHARS.sub("", (display_name or "").lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHENS.sub("-", slug).strip("-")
    return slug or FALLBACK_SLUG


def generate_unique_name(display_name: str, model: Type, session: Session) -> str:
    """生成目录内唯一的标识名。

    以调用时目录的实际状态探测冲突，冲突时依次追加 ``-1``、``-2`` ……
    并发添加同名选项时两个调用可能得到相同结果，由 name 列的唯一约束兜底，
    调用方需在冲突时重试。

    Args:
        display_name: 显示名称。
        model: 目录 ORM 模型（PaperSize / PaperType / ColorMode）。
        session: 数据库会话。

    Returns:
        未被占用的标识名。
    """
    base_name = slugify(display_name)
    candidate = base_name
    counter = 1
    while session.query(model.id).filter(model.name == candidate).first() is not None:
        candidate = f"{base_name}-{counter}"
        counter += 1
    return candidate
