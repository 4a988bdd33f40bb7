"""登录认证 - 简易 Bearer token

员工用用户名/密码登录换取 token，之后在请求头中携带
``Authorization: Bearer <token>``。token 只保存在进程内存中，重启即失效。
"""
import secrets
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional

from loguru import logger

from config.settings import settings
from database.errors import UnauthorizedError


class TokenAuthenticator:
    """Bearer token 认证器

    Attributes:
        username: 员工用户名
        password: 员工密码
        ttl: token 有效期
    """

    def __init__(self, username: Optional[str] = None,
                 password: Optional[str] = None,
                 ttl_hours: Optional[int] = None):
        self.username = username or settings.web_username
        self.password = password or settings.web_password
        self.ttl = timedelta(hours=ttl_hours or settings.token_ttl_hours)
        self._valid_tokens: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def login(self, username: str, password: str) -> str:
        """校验用户名密码并签发 token

        Raises:
            UnauthorizedError: 用户名或密码错误
        """
        if not (secrets.compare_digest(str(username or ""), self.username)
                and secrets.compare_digest(str(password or ""), self.password)):
            logger.warning(f"登录失败: username={username}")
            raise UnauthorizedError("Invalid credentials")
        token = secrets.token_hex(32)
        with self._lock:
            self._valid_tokens[token] = datetime.now() + self.ttl
        logger.info(f"员工已登录: {username}")
        return token

    def verify(self, token: str) -> bool:
        """验证 token，过期的 token 会被清除"""
        with self._lock:
            expires = self._valid_tokens.get(token)
            if expires is None:
                return False
            if datetime.now() > expires:
                del self._valid_tokens[token]
                return False
            return True

    def is_authorized(self, authorization: Optional[str]) -> bool:
        """判断 Authorization 请求头是否携带有效 token"""
        if not authorization or not authorization.startswith("Bearer "):
            return False
        return self.verify(authorization[7:].strip())

    def require(self, authorization: Optional[str]) -> None:
        """要求有效 token

        Raises:
            UnauthorizedError: 缺少或无效的 token
        """
        if not self.is_authorized(authorization):
            raise UnauthorizedError("Access token required")

    def revoke(self, token: str) -> None:
        with self._lock:
            self._valid_tokens.pop(token, None)
