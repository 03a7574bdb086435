"""
测试公共替身
- FakeHttpClient: 以字典描述站点的内存抓取器，记录每次抓取
- RecordingSink: 记录投递的结果，不发网络请求
- FakeRobots: 固定的 robots 规则
"""

import threading
from typing import Dict, List, Optional, Tuple

import pytest

from tarantula.crawl.domain.demand_interface.i_http_client import IHttpClient
from tarantula.crawl.domain.demand_interface.i_result_sink import IResultSink
from tarantula.crawl.domain.demand_interface.i_robots_txt_parser import IRobotsTxtParser
from tarantula.crawl.domain.value_objects.fetch_result import FetchErrorKind, FetchResult
from tarantula.crawl.domain.value_objects.http_response import HttpResponse


class FakeHttpClient(IHttpClient):
    """
    pages: url -> html 或 FetchErrorKind
    未登记的URL返回 HTTP 404
    """

    def __init__(self, pages: Dict[str, object], delay: float = 0.0):
        self._pages = pages
        self._delay = delay
        self._lock = threading.Lock()
        self.fetched: List[str] = []

    def get(self, url, headers=None, timeout=None, retries=None) -> HttpResponse:
        raise AssertionError("robots.txt 不应通过 FakeHttpClient 获取")

    def fetch(self, url, user_agent, maximum_redirects, ignore_redirects=False, redirect_guard=None) -> FetchResult:
        with self._lock:
            self.fetched.append(url)
        if self._delay:
            threading.Event().wait(self._delay)

        page = self._pages.get(url)
        if page is None:
            return FetchResult.failure(url, FetchErrorKind.HTTP_ERROR, "HTTP 404", status_code=404)
        if isinstance(page, FetchErrorKind):
            return FetchResult.failure(url, page, page.value)
        return FetchResult(
            url=url,
            final_url=url,
            status_code=200,
            content=page,
            content_type="text/html; charset=utf-8",
        )


class RecordingSink(IResultSink):
    def __init__(self):
        self._lock = threading.Lock()
        self.results = []
        self.completions: List[Tuple[str, dict]] = []
        self.closed = False

    def deliver(self, result, config) -> bool:
        with self._lock:
            self.results.append(result)
        return True

    def deliver_completion(self, run_id, config, summary) -> bool:
        with self._lock:
            self.completions.append((run_id, summary))
        return True

    def close(self, timeout=None) -> None:
        self.closed = True

    @property
    def urls(self) -> List[str]:
        with self._lock:
            return [r.url for r in self.results]


class FakeRobots(IRobotsTxtParser):
    def __init__(self, disallow: Optional[List[str]] = None, delay: Optional[float] = None):
        self._disallow = disallow or []
        self._delay = delay
        self.checked: List[Tuple[str, str]] = []

    def is_allowed(self, origin, path, user_agent) -> bool:
        self.checked.append((origin, path))
        return not any(path.startswith(prefix) for prefix in self._disallow)

    def crawl_delay(self, origin, user_agent):
        return self._delay

    def refresh_cache(self, origin) -> None:
        pass


class ManualClock:
    """可手动推进的单调时钟"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sink():
    return RecordingSink()
