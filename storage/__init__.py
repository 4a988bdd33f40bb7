"""文件存储模块 - 订单附件的本地存储"""
from storage.uploads import ALLOWED_MIME_TYPES, UploadStore

__all__ = ["UploadStore", "ALLOWED_MIME_TYPES"]
