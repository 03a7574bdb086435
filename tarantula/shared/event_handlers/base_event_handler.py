from abc import ABC, abstractmethod
from datetime import datetime

from tarantula.shared.domain.events import DomainEvent

# 运行生命周期事件，其余事件归入爬取过程
LIFECYCLE_EVENTS = frozenset({
    "RunCreatedEvent",
    "RunStartedEvent",
    "RunDrainingEvent",
    "RunResumedEvent",
    "RunCompletedEvent",
    "RunCancelledEvent",
})


class BaseEventHandler(ABC):
    """
    事件处理器基类：订阅 EventBus，把领域事件整理成统一的日志条目
    """

    @abstractmethod
    def handle(self, event: DomainEvent) -> None:
        """
        EventBus 回调入口

        参数:
            event: DomainEvent 实例
        """
        pass

    def _format_event_to_log(self, event: DomainEvent) -> dict:
        """
        将领域事件转换为日志格式

        返回:
            格式化的日志字典
        """
        message, level = self._get_message_and_level(event)

        return {
            "timestamp": self._format_timestamp(event.timestamp),
            "level": level,
            "message": message,
            "event_type": event.event_type,
            "run_id": event.run_id,
            "data": event.data
        }

    def _get_message_and_level(self, event: DomainEvent) -> tuple[str, str]:
        """
        根据事件类型生成消息和日志级别

        返回:
            (message, level) 元组
        """
        event_type = event.event_type
        data = event.data

        # --- 运行生命周期事件 ---
        if event_type == "RunCreatedEvent":
            robots = "忽略" if data.get('ignore_robots_txt') else "遵守"
            return (
                f"▶ 运行创建: {data.get('url', 'N/A')} "
                f"[最大深度: {data.get('maximum_depth')}, 最大重定向: {data.get('maximum_redirects')}, "
                f"robots.txt: {robots}]",
                "INFO"
            )

        elif event_type == "RunStartedEvent":
            return ("▶ 运行开始", "INFO")

        elif event_type == "RunDrainingEvent":
            return (f"⏳ 待抓取队列已空，等待 {data.get('in_flight', 0)} 个在途请求", "DEBUG")

        elif event_type == "RunResumedEvent":
            return (f"▶ 发现新链接，继续运行 (待抓取: {data.get('pending', 0)})", "DEBUG")

        elif event_type == "RunCompletedEvent":
            total_pages = data.get('total_pages', 0)
            failed_pages = data.get('failed_pages', 0)
            elapsed_time = data.get('elapsed_time', 0)
            return (
                f"✓ 爬取完成! 共抓取 {total_pages} 个页面, "
                f"失败 {failed_pages} 个 "
                f"(耗时: {elapsed_time:.1f}秒)",
                "SUCCESS"
            )

        elif event_type == "RunCancelledEvent":
            return (f"⏹ 运行已取消: {data.get('reason', '')}", "WARNING")

        # --- 爬取过程事件 ---

        elif event_type == "PageCrawledEvent":
            url = data.get('url', '')
            final_url = data.get('final_url', url)
            redirected = f"\n  最终URL: {final_url}" if final_url != url else ""
            return (
                f"✓ 抓取: {url} [{data.get('status')}, HTTP {data.get('http_status')}] "
                f"(深度: {data.get('depth', 0)}, 链接: {data.get('link_count', 0)}){redirected}",
                "INFO"
            )

        elif event_type == "CrawlErrorEvent":
            return (
                f"✗ 爬取失败 [{data.get('error_type', 'UNKNOWN')}]: {data.get('url', '')}\n"
                f"  错误: {data.get('error_message', '')}",
                "ERROR"
            )

        elif event_type == "LinkFilteredEvent":
            return (
                f"∅ 链接过滤: {data.get('url')} ({data.get('reason')})",
                "DEBUG"
            )

        else:
            return (f"事件: {event_type}", "DEBUG")

    def _format_timestamp(self, timestamp: datetime) -> str:
        """格式化时间戳"""
        if not isinstance(timestamp, datetime):
            return str(timestamp)
        return timestamp.strftime('%Y-%m-%d %H:%M:%S')
