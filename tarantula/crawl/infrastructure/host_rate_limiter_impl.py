# infrastructure/host_rate_limiter_impl.py
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from ..domain.demand_interface.i_host_rate_limiter import IHostRateLimiter
from ..domain.value_objects.acquire_result import AcquireResult

logger = logging.getLogger(__name__)


@dataclass
class HostState:
    """单个主机的限速状态，由自己的锁保护"""
    host: str
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    in_flight: int = 0
    last_granted_at: Optional[float] = None


class HostRateLimiterImpl(IHostRateLimiter):
    """
    主机限速器实现

    主机状态存放在一个按主机键索引的表中，进程内所有运行共享。
    表本身只在新增主机时加锁；申请/归还只锁对应主机，不同主机互不影响。
    """

    def __init__(
        self,
        default_delay: float = 1.0,
        max_concurrency: int = 2,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        参数:
            default_delay: 默认的最小放行间隔(秒)
            max_concurrency: 每个主机的最大并发请求数
            clock: 单调时钟，测试时可替换
        """
        if default_delay < 0:
            raise ValueError(f"default_delay 不能为负数: {default_delay}")
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency 至少为1: {max_concurrency}")

        self._default_delay = default_delay
        self._max_concurrency = max_concurrency
        self._clock = clock
        self._hosts: Dict[str, HostState] = {}
        self._hosts_lock = threading.Lock()

    @property
    def default_delay(self) -> float:
        return self._default_delay

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    def _state_for(self, host: str) -> HostState:
        state = self._hosts.get(host)
        if state is not None:
            return state
        with self._hosts_lock:
            state = self._hosts.get(host)
            if state is None:
                state = HostState(host=host)
                self._hosts[host] = state
            return state

    def effective_delay(self, crawl_delay: Optional[float]) -> float:
        if crawl_delay is None:
            return self._default_delay
        return max(self._default_delay, crawl_delay)

    def try_acquire(self, host: str, crawl_delay: Optional[float] = None) -> AcquireResult:
        delay = self.effective_delay(crawl_delay)
        state = self._state_for(host)

        with state.lock:
            now = self._clock()

            if state.last_granted_at is not None:
                next_allowed = state.last_granted_at + delay
                if now < next_allowed:
                    return AcquireResult.deny(next_allowed - now)

            if state.in_flight >= self._max_concurrency:
                # 并发已满：至少等一个间隔后再试
                return AcquireResult.deny(delay if delay > 0 else 0.05)

            state.in_flight += 1
            state.last_granted_at = now
            return AcquireResult.grant()

    def release(self, host: str) -> None:
        state = self._hosts.get(host)
        if state is None:
            logger.warning(f"release: 未知主机 {host}")
            return

        with state.lock:
            if state.in_flight <= 0:
                logger.warning(f"release: 主机 {host} 没有在途请求")
                return
            state.in_flight -= 1

    def in_flight(self, host: str) -> int:
        state = self._hosts.get(host)
        if state is None:
            return 0
        with state.lock:
            return state.in_flight
