from typing import Dict, List, Callable
import logging
import threading


class EventBus:
    """
    事件总线 - 共享基础设施
    不定义接口，直接实现（因为只有一个版本）

    爬取工作线程会并发发布事件，订阅表的读写由锁保护；
    处理器本身在发布者线程中同步执行。
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}
        self._global_handlers: List[Callable] = []
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def subscribe(self, event_type: str, handler: Callable) -> None:
        """订阅事件"""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)
        self._logger.debug(f"订阅事件: {event_type}")

    def subscribe_to_all(self, handler: Callable) -> None:
        """订阅所有事件"""
        with self._lock:
            self._global_handlers.append(handler)
        self._logger.debug("订阅全部事件")

    def publish(self, event) -> None:
        """发布事件"""
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, []))
            handlers.extend(self._global_handlers)

        for handler in handlers:
            try:
                # handler 是具体的事件处理函数，如 LoggingEventHandler.handle
                handler(event)
            except Exception as e:
                self._logger.error(f"事件处理失败: {event.event_type} - {str(e)}")

    def unsubscribe(self, event_type: str, handler: Callable) -> None:
        """取消订阅"""
        with self._lock:
            if event_type in self._handlers and handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)
