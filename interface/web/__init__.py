"""Web 接口 - FastAPI 路由、WebSocket 推送、登录认证与 CSV 导出"""
from interface.web.observer import WebSocketObserver
from interface.web.server import WebServer

__all__ = ["WebServer", "WebSocketObserver"]
