"""终端观察者 - 用于开发调试的事件输出

把每个广播事件打印到终端（或任意文本流），方便观察订单和设置的实时变更。

使用方式：
    ```python
    broadcaster.register(TerminalObserver())
    # [10:32:05] order_created {"orderId": 3, "orderNumber": 1003}
    ```
"""
import json
import sys
from typing import Optional, TextIO

from interface.base import Event, Observer


class TerminalObserver(Observer):
    """终端事件观察者

    同步写出一行文本，不需要事件循环。
    """

    def __init__(self, stream: Optional[TextIO] = None, name: str = "terminal"):
        """
        Args:
            stream: 输出流，默认 sys.stdout
            name: 观察者名称
        """
        super().__init__(name)
        self.stream = stream or sys.stdout

    def format(self, event: Event) -> str:
        stamp = event.timestamp.astimezone().strftime("%H:%M:%S")
        payload = json.dumps(event.payload, ensure_ascii=False, default=str)
        return f"[{stamp}] {event.name} {payload}"

    def deliver(self, event: Event):
        self.stream.write(self.format(event) + "\n")
        self.stream.flush()
