from abc import ABC, abstractmethod
from typing import Optional


class IRobotsTxtParser(ABC):
    """Robots.txt协议解析器接口"""

    @abstractmethod
    def is_allowed(self, origin: str, path: str, user_agent: str) -> bool:
        """
        检查路径是否允许被指定user-agent爬取

        参数:
            origin: 站点来源，如 https://example.com
            path: 路径（可带查询串）
            user_agent: 爬虫的User-Agent标识

        返回:
            True表示允许爬取，False表示禁止

        逻辑:
            1. 首次引用该站点时获取 robots.txt（并发的首次引用只产生一次请求）
            2. 获取失败、非200、超时或解析失败一律视为不限制
        """
        pass

    @abstractmethod
    def crawl_delay(self, origin: str, user_agent: str) -> Optional[float]:
        """
        获取robots.txt指定的爬取延迟时间

        返回:
            延迟秒数，None表示未指定
        """
        pass

    @abstractmethod
    def refresh_cache(self, origin: str) -> None:
        """
        删除指定站点的robots.txt缓存，下次引用时重新获取
        """
        pass
