"""WebSocket 观察者 - 把广播事件推送给看板/后台浏览器"""
from interface.base import Event, Observer


class WebSocketObserver(Observer):
    """单个 WebSocket 连接的观察者

    每条消息格式为 ``{"event": 名称, "data": 负载, "timestamp": ISO时间}``。
    发送失败（连接已断开）时由广播器自动注销。

    Attributes:
        websocket: FastAPI/Starlette WebSocket 对象
    """

    def __init__(self, name: str, websocket):
        super().__init__(name)
        self.websocket = websocket

    def deliver(self, event: Event):
        return self.websocket.send_json(event.to_dict())
