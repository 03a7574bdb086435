from abc import ABC, abstractmethod

from ..value_objects.page_result import PageResult
from ..value_objects.run_config import RunConfig


class IResultSink(ABC):
    """
    结果投递接口
    投递相对爬取主流程是异步的：目标地址缓慢或不可达只会积压投递队列，不会阻塞工作线程
    """

    @abstractmethod
    def deliver(self, result: PageResult, config: RunConfig) -> bool:
        """
        提交一个页面结果

        返回:
            True 表示已进入投递队列；False 表示被丢弃（队列已满或已关闭）
        """
        pass

    @abstractmethod
    def deliver_completion(self, run_id: str, config: RunConfig, summary: dict) -> bool:
        """提交运行完成通知"""
        pass

    @abstractmethod
    def close(self, timeout: float = None) -> None:
        """停止投递线程"""
        pass
