from abc import ABC, abstractmethod
from typing import Optional, Tuple

from ..value_objects.crawl_task import CrawlTask
from ..value_objects.offer_result import OfferResult


class IUrlFrontier(ABC):
    """
    URL前沿队列接口 - 单次运行内的待抓取/在途/已访问集合
    职责: 标准化去重、深度限制、按主机公平出队、排空判定
    """

    @abstractmethod
    def offer(self, url: str, depth: int, referrer: Optional[str] = None) -> OfferResult:
        """
        提交一个发现的URL

        参数:
            url: 原始URL（相对地址需要配合 referrer 解析）
            depth: 距离种子的跳数
            referrer: 发现该链接的页面的最终URL

        返回:
            OfferResult，拒绝原因为 DUPLICATE / DEPTH_EXCEEDED / SCHEME_UNSUPPORTED / MALFORMED
        """
        pass

    @abstractmethod
    def take(self, timeout: Optional[float] = None) -> Optional[CrawlTask]:
        """
        取出下一个可以抓取的任务并标记为在途

        返回:
            CrawlTask；队列已排空、已关闭或等待超时时返回 None
        """
        pass

    @abstractmethod
    def claim(self, url: str) -> bool:
        """
        直接登记为已访问，不进入待抓取集合

        用途:
            重定向目标在跟随之前登记，避免同一页面经重定向和直接链接各抓一次

        返回:
            False 表示该URL已访问、待抓取或在途
        """
        pass

    @abstractmethod
    def mark_in_flight(self, task: CrawlTask) -> bool:
        """将一个待抓取任务移入在途集合"""
        pass

    @abstractmethod
    def mark_done(self, task: CrawlTask) -> None:
        """任务处理完毕：移出在途，加入已访问"""
        pass

    @abstractmethod
    def requeue(self, task: CrawlTask, delay: float) -> None:
        """
        将在途任务放回待抓取集合，并推迟该主机的下一次出队

        用途:
            限速器拒绝时，工作线程归还任务去服务其他主机
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """停止出队，唤醒所有等待的工作线程"""
        pass

    @abstractmethod
    def counts(self) -> Tuple[int, int, int]:
        """原子快照 (pending, in_flight, visited)"""
        pass

    @abstractmethod
    def is_drained(self) -> bool:
        """pending 与 in_flight 都为零"""
        pass
