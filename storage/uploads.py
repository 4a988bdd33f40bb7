"""订单附件存储

顾客提交订单时上传的打印文件保存在本地目录中，订单只记录生成的文件名。

- 只接受图片、PDF 和 Word 文档（ALLOWED_MIME_TYPES）
- 单个文件最大 25 MiB（可通过 settings.max_upload_size 调整）
- 文件名由系统生成：``order-<毫秒时间戳>-<随机数><扩展名>``
"""
import os
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

from config.settings import settings
from database.errors import NotFoundError, StorageError, ValidationError

ALLOWED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
})


class UploadStore:
    """本地附件存储

    Attributes:
        upload_dir: 存储目录（不存在时自动创建）
        max_size: 单个文件的最大字节数
    """

    def __init__(self, upload_dir: Optional[Union[str, Path]] = None,
                 max_size: Optional[int] = None):
        self.upload_dir = Path(upload_dir or settings.upload_dir)
        self.max_size = max_size or settings.max_upload_size

    def store(self, data: bytes, original_name: str, mime_type: str) -> Dict[str, Any]:
        """保存上传文件

        Args:
            data: 文件内容
            original_name: 顾客上传时的文件名（只取扩展名）
            mime_type: 文件 MIME 类型

        Returns:
            ``{"filename", "originalName", "size", "path", "mimetype"}``，
            path 为相对存储目录的文件名

        Raises:
            ValidationError: 空文件、类型不允许或超过大小限制
            StorageError: 写入失败
        """
        if not data:
            raise ValidationError("No file uploaded")
        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                "Invalid file type. Only images, PDFs, and Word documents are allowed."
            )
        if len(data) > self.max_size:
            raise ValidationError(
                f"File too large. Maximum size is {self.max_size // (1024 * 1024)}MB"
            )

        extension = os.path.splitext(os.path.basename(original_name or ""))[1]
        filename = f"order-{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{extension}"
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            (self.upload_dir / filename).write_bytes(data)
        except OSError as e:
            logger.error(f"附件写入失败 {filename}: {e}")
            raise StorageError("File upload failed") from e

        logger.info(f"附件已保存: {filename} ({len(data)} bytes, {mime_type})")
        return {
            "filename": filename,
            "originalName": original_name,
            "size": len(data),
            "path": filename,
            "mimetype": mime_type,
        }

    def info(self, filename: str) -> Dict[str, Any]:
        """查询附件信息

        Raises:
            ValidationError: 文件名非法
            NotFoundError: 文件不存在
        """
        path = self._resolve(filename)
        if not path.is_file():
            raise NotFoundError("File not found")
        stats = path.stat()
        return {
            "filename": filename,
            "size": stats.st_size,
            "created": datetime.fromtimestamp(stats.st_ctime, timezone.utc).isoformat(),
            "modified": datetime.fromtimestamp(stats.st_mtime, timezone.utc).isoformat(),
        }

    def delete(self, filename: str) -> None:
        """删除附件

        Raises:
            ValidationError: 文件名非法
            NotFoundError: 文件不存在
        """
        path = self._resolve(filename)
        if not path.is_file():
            raise NotFoundError("File not found")
        try:
            path.unlink()
        except OSError as e:
            logger.error(f"附件删除失败 {filename}: {e}")
            raise StorageError("File deletion failed") from e
        logger.info(f"附件已删除: {filename}")

    def _resolve(self, filename: str) -> Path:
        """解析存储目录内的文件路径，拒绝目录穿越"""
        if not filename or filename != os.path.basename(filename) or filename in (".", ".."):
            raise ValidationError("Invalid filename")
        root = self.upload_dir.resolve()
        path = (root / filename).resolve()
        if path.parent != root:
            raise ValidationError("Invalid filename")
        return path
