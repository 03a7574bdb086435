import datetime
import threading
from typing import List, Optional

from tarantula.shared.domain.events import DomainEvent
from ..value_objects.run_config import RunConfig
from ..value_objects.run_status import RunStatus
from ..value_objects.page_result import PageResult
from ..domain_event.run_life_cycle_event import (
    RunCreatedEvent, RunStartedEvent, RunDrainingEvent,
    RunResumedEvent, RunCompletedEvent, RunCancelledEvent
)
from ..domain_event.crawl_process_event import (
    PageCrawledEvent, CrawlErrorEvent, LinkFilteredEvent
)


class CrawlRun:
    """
    爬取运行实体类，作为聚合根

    状态机: STARTING -> RUNNING <-> DRAINING -> COMPLETED，
    任何非终态都可以进入 CANCELLED。
    多个工作线程会同时调用本实体，所有状态变更都在内部锁中完成。
    """

    def __init__(self, id: str, config: RunConfig):
        self.id = id
        self.config = config
        self._status = RunStatus.STARTING
        self._lock = threading.RLock()

        self.created_at = datetime.datetime.now()
        self.updated_at = self.created_at
        self.finished_at: Optional[datetime.datetime] = None

        self._pages = 0
        self._failed_pages = 0
        self._life_cycle_events: List[DomainEvent] = []

        self._record_event(RunCreatedEvent(
            run_id=self.id,
            url=config.url,
            maximum_depth=config.maximum_depth,
            maximum_redirects=config.maximum_redirects,
            ignore_robots_txt=config.ignore_robots_txt,
            user_agent=config.user_agent,
            callback=config.callback
        ))

    def _record_event(self, event: DomainEvent):
        """内部方法：记录领域事件（调用方持有锁）"""
        self._life_cycle_events.append(event)
        self.updated_at = datetime.datetime.now()

    def pop_uncommitted_events(self) -> List[DomainEvent]:
        """取出并清空未发布的领域事件"""
        with self._lock:
            events = self._life_cycle_events
            self._life_cycle_events = []
            return events

#-------------------   状态   -------------------

    @property
    def status(self) -> RunStatus:
        with self._lock:
            return self._status

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_cancelled(self) -> bool:
        return self.status == RunStatus.CANCELLED

    @property
    def pages(self) -> int:
        with self._lock:
            return self._pages

    @property
    def failed_pages(self) -> int:
        with self._lock:
            return self._failed_pages

#-------------------   状态转换方法   -------------------

    def start(self):
        """种子已入队，开始运行"""
        with self._lock:
            if self._status != RunStatus.STARTING:
                return
            self._status = RunStatus.RUNNING
            self._record_event(RunStartedEvent(run_id=self.id))

    def observe_frontier(self, pending: int, in_flight: int) -> RunStatus:
        """
        根据前沿队列的快照推进状态

        参数:
            pending: 待抓取数量
            in_flight: 在途数量
        返回:
            推进后的状态

        两阶段判定：pending 为空先进入 DRAINING；
        只有 in_flight 也归零才进入 COMPLETED。
        DRAINING 期间在途请求发现新链接会回到 RUNNING。
        """
        with self._lock:
            if self._status == RunStatus.RUNNING and pending == 0:
                self._status = RunStatus.DRAINING
                self._record_event(RunDrainingEvent(run_id=self.id, in_flight=in_flight))
            elif self._status == RunStatus.DRAINING and pending > 0:
                self._status = RunStatus.RUNNING
                self._record_event(RunResumedEvent(run_id=self.id, pending=pending))

            if self._status == RunStatus.DRAINING and pending == 0 and in_flight == 0:
                self._complete_locked()

            return self._status

    def complete(self):
        """完成运行（幂等）"""
        with self._lock:
            if self._status.is_terminal:
                return
            self._complete_locked()

    def _complete_locked(self):
        self._status = RunStatus.COMPLETED
        self.finished_at = datetime.datetime.now()
        elapsed = (self.finished_at - self.created_at).total_seconds()
        self._record_event(RunCompletedEvent(
            run_id=self.id,
            total_pages=self._pages,
            failed_pages=self._failed_pages,
            elapsed_time=elapsed
        ))

    def cancel(self, reason: str = "用户手动取消") -> bool:
        """
        取消运行

        返回:
            True 表示本次调用完成了取消；已处于终态时返回 False
        """
        with self._lock:
            if self._status.is_terminal:
                return False
            self._status = RunStatus.CANCELLED
            self.finished_at = datetime.datetime.now()
            self._record_event(RunCancelledEvent(run_id=self.id, reason=reason))
            return True

#-------------------   结果与过程记录   -------------------

    def try_record_page(self, result: PageResult) -> bool:
        """
        记录一个页面结果

        返回:
            False 表示运行已终止，结果应被丢弃（不再发出）
        """
        with self._lock:
            if self._status.is_terminal:
                return False

            self._pages += 1
            self._record_event(PageCrawledEvent(
                run_id=self.id,
                url=result.url,
                final_url=result.final_url,
                depth=result.depth,
                status=result.status.value,
                http_status=result.http_status,
                link_count=len(result.links)
            ))

            if not result.is_success:
                self._failed_pages += 1
                self._record_event(CrawlErrorEvent(
                    run_id=self.id,
                    url=result.url,
                    error_type=result.status.value,
                    error_message=result.error_message or ""
                ))
            return True

    def record_link_filtered(self, url: str, reason: str):
        with self._lock:
            self._record_event(LinkFilteredEvent(run_id=self.id, url=url, reason=reason))

    def record_crawl_error(self, url: str, error_message: str, error_type: str = "GeneralError"):
        """记录不产生 PageResult 的爬取错误"""
        with self._lock:
            self._record_event(CrawlErrorEvent(
                run_id=self.id,
                url=url,
                error_type=error_type,
                error_message=error_message
            ))

    def to_summary(self) -> dict:
        with self._lock:
            return {
                "run_id": self.id,
                "url": self.config.url,
                "status": self._status.value,
                "pages": self._pages,
                "failures": self._failed_pages,
                "created_at": self.created_at.isoformat(),
                "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            }
