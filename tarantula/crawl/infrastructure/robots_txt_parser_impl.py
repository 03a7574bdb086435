# infrastructure/robots_txt_parser_impl.py
import logging
import threading
from typing import Dict, Optional
from urllib.robotparser import RobotFileParser

from ..domain.demand_interface.i_http_client import IHttpClient
from ..domain.demand_interface.i_robots_txt_parser import IRobotsTxtParser
from tarantula.shared.logging_config import get_error_logger

logger = logging.getLogger(__name__)


class RobotsTxtParserImpl(IRobotsTxtParser):
    """
    基于urllib.robotparser的实现

    - 缓存按 origin（协议+主机+端口）保存，进程内所有运行共享，不过期；
    - 每个 origin 一把锁：并发的首次引用只会产生一次 robots.txt 请求，其余线程等待结果；
    - 不同 origin 之间互不阻塞。
    """

    def __init__(self, http_client: IHttpClient, timeout: float = 5.0, user_agent: str = "tarantula"):
        """
        初始化

        参数:
            http_client: 用于获取 robots.txt 的HTTP客户端
            timeout: robots.txt 请求超时(秒)
            user_agent: 首次获取时使用的默认User-Agent
        """
        self._http = http_client
        self._timeout = timeout
        self._default_user_agent = user_agent
        self._cache: Dict[str, RobotFileParser] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def is_allowed(self, origin: str, path: str, user_agent: str) -> bool:
        """检查路径是否允许爬取"""
        robot_parser = self._get_parser(origin, user_agent)
        try:
            return robot_parser.can_fetch(user_agent, path or '/')
        except Exception as e:
            # 规则匹配异常时不阻塞爬取
            logger.warning(f"robots.txt 规则匹配失败: {origin}{path} - {e}, 默认允许访问")
            return True

    def crawl_delay(self, origin: str, user_agent: str) -> Optional[float]:
        """获取爬取延迟"""
        robot_parser = self._get_parser(origin, user_agent)
        try:
            delay = robot_parser.crawl_delay(user_agent)
        except Exception:
            return None
        return float(delay) if delay else None

    def refresh_cache(self, origin: str) -> None:
        """刷新缓存"""
        with self._lock_for(origin):
            self._cache.pop(origin, None)

    def is_cached(self, origin: str) -> bool:
        return origin in self._cache

    def _lock_for(self, origin: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(origin)
            if lock is None:
                lock = threading.Lock()
                self._locks[origin] = lock
            return lock

    def _get_parser(self, origin: str, user_agent: Optional[str] = None) -> RobotFileParser:
        """获取或创建robots.txt解析器"""
        # 快速路径：已缓存时不加锁
        parser = self._cache.get(origin)
        if parser is not None:
            return parser

        with self._lock_for(origin):
            # 等锁期间可能已被其他线程写入
            parser = self._cache.get(origin)
            if parser is None:
                parser = self._fetch_and_parse(origin, user_agent or self._default_user_agent)
                self._cache[origin] = parser
            return parser

    def _fetch_and_parse(self, origin: str, user_agent: str) -> RobotFileParser:
        """
        下载并解析robots.txt
        任何失败都返回允许所有访问的解析器，只尝试一次
        """
        robots_url = f"{origin}/robots.txt"
        parser = RobotFileParser()
        parser.set_url(robots_url)

        response = self._http.get(
            robots_url,
            headers={'User-Agent': user_agent},
            timeout=self._timeout,
            retries=0
        )

        if not response.is_success or response.status_code != 200:
            reason = response.error_message or f"HTTP {response.status_code}"
            get_error_logger().warning(
                f"无法获取robots.txt from {robots_url}: {reason}, 视为不限制",
                extra={'component': 'robots', 'origin': origin}
            )
            parser.parse([])  # 空规则=允许所有
            return parser

        try:
            parser.parse(response.content.splitlines())
            logger.info(f"已解析 robots.txt: {robots_url}")
        except Exception as e:
            get_error_logger().warning(
                f"robots.txt解析失败 {robots_url}: {str(e)}, 视为不限制",
                extra={'component': 'robots', 'origin': origin}
            )
            parser = RobotFileParser()
            parser.set_url(robots_url)
            parser.parse([])

        return parser
