from abc import ABC, abstractmethod
from typing import Optional

from ..value_objects.acquire_result import AcquireResult


class IHostRateLimiter(ABC):
    """
    主机限速器接口
    每个主机: 最多 N 个并发请求，两次放行的间隔不小于 max(默认间隔, robots Crawl-delay)
    """

    @abstractmethod
    def try_acquire(self, host: str, crawl_delay: Optional[float] = None) -> AcquireResult:
        """
        非阻塞地申请一个请求名额

        参数:
            host: 标准化后的主机键
            crawl_delay: robots.txt 给出的延迟（秒），None 表示未指定

        返回:
            AcquireResult；被拒绝时 retry_after 为建议等待秒数
        """
        pass

    @abstractmethod
    def release(self, host: str) -> None:
        """
        归还名额，每次成功的 try_acquire 必须且只能对应一次 release
        """
        pass
