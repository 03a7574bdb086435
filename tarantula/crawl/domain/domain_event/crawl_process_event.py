from dataclasses import dataclass

from tarantula.shared.domain.events import DomainEvent


@dataclass
class PageCrawledEvent(DomainEvent):
    """页面抓取到达终态（成功或失败都会产生 PageResult）"""
    url: str
    final_url: str
    depth: int
    status: str
    http_status: int
    link_count: int = 0


@dataclass
class CrawlErrorEvent(DomainEvent):
    """爬取过程中发生的非致命错误（如单个页面失败）"""
    url: str
    error_type: str
    error_message: str


@dataclass
class LinkFilteredEvent(DomainEvent):
    """链接被过滤事件，用于调试或详细日志"""
    url: str
    reason: str  # e.g., "DUPLICATE", "DEPTH_EXCEEDED", "robots_txt"
