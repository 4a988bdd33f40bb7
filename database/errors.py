"""领域错误类型。

所有可预期的失败都以 PrintShopError 的子类抛出，由 Web 层统一映射为
HTTP 状态码：

- ValidationError：输入缺失或格式错误（400）
- UnauthorizedError：缺少或无效的登录凭证（401）
- NotFoundError：没有匹配的记录（404）
- ConflictError：唯一性约束冲突（409）
- StorageError：底层持久化失败（500，不向调用方泄露细节）
"""
from typing import Any, Dict, List, Optional


class PrintShopError(Exception):
    """领域错误基类。

    Attributes:
        message: 面向调用方的错误信息。
        status_code: 对应的 HTTP 状态码。
    """

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """转换为 JSON 响应体。"""
        return {"error": self.message}


class ValidationError(PrintShopError, ValueError):
    """输入校验失败。

    Attributes:
        errors: 逐字段的错误列表，每项为 ``{"field": ..., "message": ...}``。
    """

    status_code = 400

    def __init__(self, message: str,
                 errors: Optional[List[Dict[str, str]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.errors:
            payload["errors"] = self.errors
        return payload


class NotFoundError(PrintShopError, LookupError):
    status_code = 404


class ConflictError(PrintShopError):
    status_code = 409


class StorageError(PrintShopError):
    """持久化失败。对外只暴露通用信息，详细原因写入日志。"""

    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)


class UnauthorizedError(PrintShopError):
    status_code = 401
