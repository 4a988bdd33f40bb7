"""实时事件抽象层 - 统一的事件广播协议

定义 Event（事件）数据结构和 Observer（观察者）基类。
每个 Observer 代表一个实时接收端（WebSocket 客户端、终端输出等）。

核心概念：
- EventType: 事件名称（订单、设置、组合、选项的变更）
- Event: 统一的事件格式（名称 + 最小标识负载 + 时间戳）
- Observer: 观察者抽象基类，负责把事件转换为接收端格式并投递

设计原则：
- 事件只在数据提交成功之后发布
- 负载只包含标识信息（id 和/或变更字段），不包含完整的新状态
- 观察者之间互相独立，单个观察者失败不影响其他观察者和触发操作
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Dict, Optional, Union


class EventType(Enum):
    """事件类型"""
    ORDER_CREATED = "order_created"             # {orderId, orderNumber}
    ORDER_UPDATED = "order_updated"             # {orderId, updates?}
    ORDER_DELETED = "order_deleted"             # {orderId}
    SETTINGS_UPDATED = "settings_updated"       # 提交的设置映射
    SETTING_UPDATED = "setting_updated"         # {key, value}
    COMBINATION_UPDATED = "combination_updated"  # {combinationId, updates}
    OPTIONS_UPDATED = "options_updated"         # {catalog, optionId, action}


@dataclass
class Event:
    """统一事件格式

    Attributes:
        type: 事件类型
        payload: 最小标识负载
        timestamp: 发布时间（UTC）
    """
    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        return self.type.value

    def to_dict(self) -> Dict[str, Any]:
        """转换为传输格式 ``{"event", "data", "timestamp"}``"""
        return {
            "event": self.name,
            "data": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class Observer(ABC):
    """观察者抽象基类

    所有实时接收端都应实现此接口。deliver 可以是普通方法，
    也可以返回 awaitable（异步接收端，如 WebSocket），由广播器负责调度。

    使用方式：
        ```python
        class PrintObserver(Observer):
            def deliver(self, event):
                print(event.name, event.payload)

        broadcaster.register(PrintObserver("printer"))
        ```
    """

    def __init__(self, name: str):
        """
        Args:
            name: 观察者唯一标识（如 'terminal', 'ws-1'）
        """
        self.name = name

    @abstractmethod
    def deliver(self, event: Event) -> Optional[Awaitable[Any]]:
        """投递单个事件

        Args:
            event: 事件

        Returns:
            None，或需要调度执行的 awaitable
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


EventName = Union[str, EventType]
