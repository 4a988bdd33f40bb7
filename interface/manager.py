"""事件广播器 - 把数据变更通知扇出给所有已连接的观察者"""
import asyncio
import inspect
import threading
from typing import Any, Dict, List, Optional, Set

from loguru import logger

from interface.base import Event, EventName, EventType, Observer


class EventBroadcaster:
    """事件广播器

    无状态的扇出通知：把事件投递给发布时刻已注册的每个观察者，
    尽力而为、每个观察者最多一次、不持久化、不为后来者重放。
    投递失败只记录日志，绝不影响触发事件的数据操作。

    异步观察者（deliver 返回 awaitable）的调度规则：
    - 绑定的循环正在运行且不是当前循环：提交到 bind_loop 绑定的循环
    - 在绑定的循环中发布，或未绑定循环：作为任务加入当前循环
    - 都没有：丢弃该次投递（debug 日志）

    异步投递失败的观察者会被自动注销（视为连接已断开）。

    使用方式：
        ```python
        broadcaster = EventBroadcaster()
        broadcaster.register(TerminalObserver())
        broadcaster.publish(EventType.ORDER_DELETED, {"orderId": 7})
        ```
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """
        Args:
            loop: 用于调度异步投递的事件循环（可稍后通过 bind_loop 绑定）
        """
        self.observers: Dict[str, Observer] = {}
        self._loop = loop
        self._lock = threading.Lock()
        self._pending: Set[Any] = set()

    def register(self, observer: Observer):
        """注册观察者，同名观察者会被替换"""
        with self._lock:
            if observer.name in self.observers:
                logger.warning(f"观察者 {observer.name} 已注册，将被替换")
            self.observers[observer.name] = observer
        logger.debug(f"观察者已注册: {observer.name}")

    def unregister(self, name: str) -> Optional[Observer]:
        """注销观察者

        Returns:
            被注销的观察者，不存在返回 None
        """
        with self._lock:
            observer = self.observers.pop(name, None)
        if observer is not None:
            logger.debug(f"观察者已注销: {name}")
        return observer

    def get_observer(self, name: str) -> Optional[Observer]:
        return self.observers.get(name)

    def list_observers(self) -> List[str]:
        """列出所有已注册的观察者名称"""
        with self._lock:
            return list(self.observers.keys())

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop]):
        """绑定事件循环（异步接收端所在的循环），异步投递都在该循环中执行"""
        self._loop = loop

    def publish(self, event_type: EventName,
                payload: Optional[Dict[str, Any]] = None) -> Event:
        """发布事件

        应在数据操作提交成功之后调用。任何观察者的异常都不会抛给调用方。

        Args:
            event_type: 事件类型（EventType 或其字符串值）
            payload: 最小标识负载

        Returns:
            已发布的事件
        """
        event = Event(type=EventType(event_type), payload=dict(payload or {}))
        with self._lock:
            observers = list(self.observers.values())

        logger.debug(f"广播事件 {event.name} -> {len(observers)} 个观察者")
        for observer in observers:
            try:
                result = observer.deliver(event)
            except Exception as e:
                logger.warning(f"事件 {event.name} 投递给 {observer.name} 失败: {e}")
                continue
            if inspect.isawaitable(result):
                self._schedule(observer, event, result)
        return event

    def _schedule(self, observer: Observer, event: Event, awaitable) -> None:
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        bound = self._loop if self._loop is not None and self._loop.is_running() else None

        # 接收端属于绑定的循环，只有在该循环内（或未绑定时）才直接建任务
        if bound is not None and bound is not current:
            future = asyncio.run_coroutine_threadsafe(
                self._await_delivery(observer, event, awaitable), bound
            )
        elif current is not None:
            future = current.create_task(self._await_delivery(observer, event, awaitable))
        else:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.debug(f"没有可用的事件循环，跳过 {observer.name} 的事件 {event.name}")
            return

        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    async def _await_delivery(self, observer: Observer, event: Event, awaitable) -> None:
        try:
            await awaitable
        except Exception as e:
            logger.warning(f"事件 {event.name} 投递给 {observer.name} 失败，注销该观察者: {e}")
            with self._lock:
                if self.observers.get(observer.name) is observer:
                    del self.observers[observer.name]

    async def drain(self):
        """等待当前循环中所有未完成的异步投递"""
        tasks = [f for f in list(self._pending) if isinstance(f, asyncio.Task)]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
