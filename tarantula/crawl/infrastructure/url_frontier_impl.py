# infrastructure/url_frontier_impl.py
import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Set, Tuple

from ..domain.demand_interface.i_url_frontier import IUrlFrontier
from ..domain.value_objects.crawl_task import CrawlTask
from ..domain.value_objects.offer_result import OfferResult, RejectReason
from .url_normalizer import normalize_url, is_supported_scheme, host_key

logger = logging.getLogger(__name__)


class UrlFrontierImpl(IUrlFrontier):
    """
    URL前沿队列实现 - 单次运行独享

    - 待抓取任务按主机分组，出队时在主机之间轮转，避免单个主机饿死其他主机；
    - visited / pending / in_flight 三个集合由同一个条件变量保护，整组原子更新；
    - take() 在没有可出队任务但仍可能出现新任务时阻塞等待，等待期间不持有锁。
    """

    def __init__(
        self,
        run_id: str,
        max_depth: int,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_depth < 0:
            raise ValueError(f"max_depth 不能为负数: {max_depth}")

        self._run_id = run_id
        self._max_depth = max_depth
        self._clock = clock
        self._cond = threading.Condition()

        self._visited: Set[str] = set()
        self._pending_urls: Set[str] = set()
        self._in_flight: Dict[str, CrawlTask] = {}

        # 主机 -> 该主机的待抓取任务(FIFO)
        self._pending_by_host: Dict[str, Deque[CrawlTask]] = {}
        # 有待抓取任务的主机轮转顺序
        self._host_cycle: Deque[str] = deque()
        # 主机 -> 最早可再次出队的时间（限速拒绝后推迟）
        self._host_ready_at: Dict[str, float] = {}

        self._closed = False

    @property
    def max_depth(self) -> int:
        return self._max_depth

# -------------------- 入队 --------------------

    def offer(self, url: str, depth: int, referrer: Optional[str] = None) -> OfferResult:
        """提交一个发现的URL"""
        try:
            normalized = normalize_url(url, referrer)
        except ValueError:
            return OfferResult.reject(RejectReason.MALFORMED)

        if not is_supported_scheme(normalized):
            return OfferResult.reject(RejectReason.SCHEME_UNSUPPORTED)

        if depth > self._max_depth:
            return OfferResult.reject(RejectReason.DEPTH_EXCEEDED)

        task = CrawlTask(
            run_id=self._run_id,
            url=normalized,
            depth=depth,
            host=host_key(normalized),
            referrer=referrer
        )

        with self._cond:
            if self._is_known_locked(normalized):
                return OfferResult.reject(RejectReason.DUPLICATE)

            self._push_locked(task)
            self._cond.notify()

        return OfferResult.accept(task)

    def claim(self, url: str) -> bool:
        """url 需已标准化"""
        with self._cond:
            if self._is_known_locked(url):
                return False
            self._visited.add(url)
            return True

    def _is_known_locked(self, url: str) -> bool:
        return url in self._visited or url in self._pending_urls or url in self._in_flight

    def _push_locked(self, task: CrawlTask, front: bool = False) -> None:
        queue = self._pending_by_host.get(task.host)
        if queue is None:
            queue = deque()
            self._pending_by_host[task.host] = queue
            self._host_cycle.append(task.host)

        if front:
            queue.appendleft(task)
        else:
            queue.append(task)
        self._pending_urls.add(task.url)

# -------------------- 出队 --------------------

    def take(self, timeout: Optional[float] = None) -> Optional[CrawlTask]:
        """取出下一个可以抓取的任务并标记为在途"""
        deadline = None if timeout is None else self._clock() + timeout

        with self._cond:
            while True:
                if self._closed:
                    return None

                # 没有待抓取也没有在途：不会再出现新任务
                if not self._pending_urls and not self._in_flight:
                    return None

                now = self._clock()
                task, wait = self._next_ready_locked(now)
                if task is not None:
                    self._mark_in_flight_locked(task)
                    return task

                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)

                # wait 为 None：只剩在途任务，等待 mark_done / offer 唤醒
                self._cond.wait(wait)

    def _next_ready_locked(self, now: float) -> Tuple[Optional[CrawlTask], Optional[float]]:
        """
        在主机之间轮转，取第一个已到可出队时间的主机的队首任务

        返回:
            (task, None) 或 (None, 距最早可出队主机的秒数)；没有待抓取任务时为 (None, None)
        """
        earliest_wait: Optional[float] = None

        for _ in range(len(self._host_cycle)):
            host = self._host_cycle[0]
            self._host_cycle.rotate(-1)  # 当前主机移到队尾

            ready_at = self._host_ready_at.get(host, 0.0)
            if ready_at > now:
                wait = ready_at - now
                earliest_wait = wait if earliest_wait is None else min(earliest_wait, wait)
                continue

            queue = self._pending_by_host[host]
            task = queue.popleft()
            if not queue:
                del self._pending_by_host[host]
                self._host_cycle.pop()
                self._host_ready_at.pop(host, None)
            return task, None

        return None, earliest_wait

    def mark_in_flight(self, task: CrawlTask) -> bool:
        """
        将一个待抓取任务移入在途集合

        返回:
            False 表示该任务不在待抓取集合中
        """
        with self._cond:
            if task.url not in self._pending_urls:
                return False

            queue = self._pending_by_host.get(task.host)
            if queue is not None:
                for queued in list(queue):
                    if queued.url == task.url:
                        queue.remove(queued)
                        break
                if not queue:
                    del self._pending_by_host[task.host]
                    self._host_cycle.remove(task.host)
                    self._host_ready_at.pop(task.host, None)

            self._mark_in_flight_locked(task)
            return True

    def _mark_in_flight_locked(self, task: CrawlTask) -> None:
        self._pending_urls.discard(task.url)
        self._in_flight[task.url] = task

# -------------------- 完成 / 归还 --------------------

    def mark_done(self, task: CrawlTask) -> None:
        """任务处理完毕：移出在途，加入已访问"""
        with self._cond:
            if self._in_flight.pop(task.url, None) is None:
                logger.warning(f"mark_done: 任务不在在途集合中: {task.url}")
            self._visited.add(task.url)
            # 可能已排空，唤醒所有等待者重新判断
            self._cond.notify_all()

    def requeue(self, task: CrawlTask, delay: float) -> None:
        """放回队首并推迟该主机"""
        with self._cond:
            if self._in_flight.pop(task.url, None) is None:
                logger.warning(f"requeue: 任务不在在途集合中: {task.url}")
                return

            self._push_locked(task, front=True)
            ready_at = self._clock() + max(0.0, delay)
            self._host_ready_at[task.host] = max(self._host_ready_at.get(task.host, 0.0), ready_at)
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

# -------------------- 查询 --------------------

    @property
    def is_closed(self) -> bool:
        with self._cond:
            return self._closed

    def counts(self) -> Tuple[int, int, int]:
        with self._cond:
            return len(self._pending_urls), len(self._in_flight), len(self._visited)

    def is_drained(self) -> bool:
        with self._cond:
            return not self._pending_urls and not self._in_flight

    def is_visited(self, url: str) -> bool:
        with self._cond:
            return url in self._visited

    @property
    def visited_urls(self) -> Set[str]:
        """已访问URL集合的副本"""
        with self._cond:
            return set(self._visited)
