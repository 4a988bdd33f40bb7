"""用户接口模块 - 实时事件广播

把订单、设置、组合与选项的变更实时推送给所有已连接的接收端：

接收端类型：
- WebSocketObserver: 看板/后台浏览器（interface.web）
- TerminalObserver: 终端输出（开发调试用）

核心组件：
- Observer: 观察者抽象基类
- EventBroadcaster: 事件广播器（统一管理多个观察者）
- Event / EventType: 统一事件格式

架构设计：
    数据操作提交 ──→ PrintShopService ──→ EventBroadcaster ──→ 观察者 ──→ 看板
                                          (扇出，失败隔离)

使用示例：
    ```python
    from interface import EventBroadcaster, TerminalObserver

    broadcaster = EventBroadcaster()
    broadcaster.register(TerminalObserver())
    broadcaster.publish("order_deleted", {"orderId": 7})
    ```
"""
from interface.base import Event, EventType, Observer
from interface.manager import EventBroadcaster

# 终端观察者
from interface.terminal.observer import TerminalObserver

__all__ = [
    # 核心
    "Event",
    "EventType",
    "Observer",
    "EventBroadcaster",
    # 观察者
    "TerminalObserver",
]
