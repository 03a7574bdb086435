from dataclasses import dataclass
from typing import Optional

from tarantula.shared.domain.events import DomainEvent


@dataclass
class RunCreatedEvent(DomainEvent):
    url: str
    maximum_depth: int
    maximum_redirects: int
    ignore_robots_txt: bool
    user_agent: str
    callback: Optional[str] = None


@dataclass
class RunStartedEvent(DomainEvent):
    pass


@dataclass
class RunDrainingEvent(DomainEvent):
    in_flight: int


@dataclass
class RunResumedEvent(DomainEvent):
    """DRAINING 状态下在途请求又发现了新链接，回到 RUNNING"""
    pending: int


@dataclass
class RunCompletedEvent(DomainEvent):
    total_pages: int
    failed_pages: int
    elapsed_time: float


@dataclass
class RunCancelledEvent(DomainEvent):
    reason: str = "用户手动取消"
