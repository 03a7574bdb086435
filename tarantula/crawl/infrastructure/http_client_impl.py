# infrastructure/http_client_impl.py
import threading
import time
from typing import List, Optional
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..domain.demand_interface.i_http_client import IHttpClient, RedirectGuard
from ..domain.value_objects.fetch_result import FetchErrorKind, FetchResult, Redirect
from ..domain.value_objects.http_response import HttpResponse
from tarantula.shared.logging_config import get_performance_logger

REDIRECT_STATUS_CODES = (301, 302, 303, 307, 308)


class HttpClientImpl(IHttpClient):
    """
    基于requests库的HTTP客户端实现

    requests.Session 不保证线程安全，每个工作线程使用自己的会话。
    """

    def __init__(
        self,
        user_agent: str = "tarantula",
        timeout: float = 10,
        max_retries: int = 2,
        retry_backoff: float = 0.3
    ):
        """
        初始化HTTP客户端

        参数:
            user_agent: 默认User-Agent标识
            timeout: 请求超时时间(秒)
            max_retries: 连接失败/5xx 的最大重试次数
            retry_backoff: 重试间隔倍数
        """
        self._user_agent = user_agent
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    def _create_session(self, max_retries: int) -> requests.Session:
        session = requests.Session()
        session.headers.update({
            'User-Agent': self._user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Encoding': 'gzip, deflate',
            'Connection': 'keep-alive'
        })

        # 重定向由 fetch 手动处理，不交给 urllib3
        if max_retries > 0:
            retry_strategy = Retry(
                total=max_retries,
                backoff_factor=self._retry_backoff,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["HEAD", "GET", "OPTIONS"],
                raise_on_status=False,
                connect=max_retries,
                read=max_retries,
                redirect=False,
            )
        else:
            # 只发一次：连接错误和 5xx 都不重试
            retry_strategy = Retry(total=0, read=False, redirect=False, raise_on_status=False)

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _session_for(self, max_retries: Optional[int] = None) -> requests.Session:
        """当前线程中重试次数为 max_retries 的会话，None 表示使用客户端默认值"""
        retries = self._max_retries if max_retries is None else max_retries
        sessions = getattr(self._local, 'sessions', None)
        if sessions is None:
            sessions = {}
            self._local.sessions = sessions

        session = sessions.get(retries)
        if session is None:
            session = self._create_session(retries)
            sessions[retries] = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    @property
    def _session(self) -> requests.Session:
        return self._session_for()

    @staticmethod
    def _decode(response: requests.Response) -> str:
        # header 里没写编码时 requests 默认是 ISO-8859-1，改用内容探测
        if response.encoding == 'ISO-8859-1':
            response.encoding = response.apparent_encoding
        if not response.encoding:
            response.encoding = 'utf-8'
        return response.text

# -------------------- 简单GET --------------------

    def get(
        self,
        url: str,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None
    ) -> HttpResponse:
        """
        执行HTTP GET请求，自动跟随重定向

        参数:
            retries: 连接失败/5xx 的重试次数，None 使用 max_retries；0 表示只发一次

        返回:
            HttpResponse对象，包含响应信息或错误信息
        """
        try:
            response = self._session_for(retries).get(
                url,
                headers=headers,
                timeout=timeout or self._timeout,
                allow_redirects=True
            )
            content = self._decode(response)

            return HttpResponse(
                url=response.url,
                status_code=response.status_code,
                headers=dict(response.headers),
                content=content,
                content_type=response.headers.get('Content-Type', ''),
                is_success=response.ok,
                error_message=None if response.ok else f"HTTP {response.status_code}"
            )

        except requests.exceptions.Timeout:
            return self._create_error_response(
                url, "请求超时", f"请求超过{timeout or self._timeout}秒未响应", is_timeout=True
            )

        except requests.exceptions.ConnectionError as e:
            return self._create_error_response(
                url, "连接失败", f"无法连接到服务器: {str(e)}"
            )

        except requests.exceptions.TooManyRedirects:
            return self._create_error_response(
                url, "重定向过多", "重定向次数超过限制"
            )

        except requests.exceptions.RequestException as e:
            return self._create_error_response(
                url, "请求异常", f"请求失败: {str(e)}"
            )

    def _create_error_response(
        self,
        url: str,
        error_type: str,
        error_detail: str,
        is_timeout: bool = False
    ) -> HttpResponse:
        return HttpResponse(
            url=url,
            status_code=0,
            headers={},
            content='',
            content_type='',
            is_success=False,
            error_message=f"{error_type}: {error_detail}",
            is_timeout=is_timeout
        )

# -------------------- 页面抓取 --------------------

    def fetch(
        self,
        url: str,
        user_agent: str,
        maximum_redirects: int,
        ignore_redirects: bool = False,
        redirect_guard: Optional[RedirectGuard] = None
    ) -> FetchResult:
        start = time.perf_counter()
        result = self._fetch(url, user_agent, maximum_redirects, ignore_redirects, redirect_guard, start)

        get_performance_logger().info(
            f"抓取 {url} 耗时 {result.elapsed_ms:.1f}ms",
            extra={
                'url': url,
                'final_url': result.final_url,
                'status_code': result.status_code,
                'redirects': len(result.redirects),
                'error_kind': result.error_kind.value if result.error_kind else None,
                'elapsed_ms': round(result.elapsed_ms, 2),
            }
        )
        return result

    def _fetch(
        self,
        url: str,
        user_agent: str,
        maximum_redirects: int,
        ignore_redirects: bool,
        redirect_guard: Optional[RedirectGuard],
        start: float
    ) -> FetchResult:
        def elapsed() -> float:
            return (time.perf_counter() - start) * 1000

        current = url
        redirects: List[Redirect] = []
        headers = {'User-Agent': user_agent}

        while True:
            try:
                response = self._session.get(
                    current,
                    headers=headers,
                    timeout=self._timeout,
                    allow_redirects=False
                )
            except requests.exceptions.Timeout:
                return FetchResult.failure(
                    url, FetchErrorKind.TIMEOUT, f"请求超过{self._timeout}秒未响应",
                    final_url=current, redirects=redirects, elapsed_ms=elapsed()
                )
            except requests.exceptions.ConnectionError as e:
                return FetchResult.failure(
                    url, FetchErrorKind.CONNECTION, f"无法连接到服务器: {str(e)}",
                    final_url=current, redirects=redirects, elapsed_ms=elapsed()
                )
            except requests.exceptions.RequestException as e:
                return FetchResult.failure(
                    url, FetchErrorKind.CONNECTION, f"请求失败: {str(e)}",
                    final_url=current, redirects=redirects, elapsed_ms=elapsed()
                )

            location = response.headers.get('Location')
            if response.status_code in REDIRECT_STATUS_CODES and location:
                response.close()

                if ignore_redirects:
                    return FetchResult.failure(
                        url, FetchErrorKind.REDIRECT_LIMIT,
                        f"HTTP {response.status_code} 重定向被忽略",
                        final_url=current, redirects=redirects, elapsed_ms=elapsed()
                    )
                if len(redirects) >= maximum_redirects:
                    return FetchResult.failure(
                        url, FetchErrorKind.REDIRECT_LIMIT,
                        f"重定向次数超过限制({maximum_redirects})",
                        final_url=current, redirects=redirects, elapsed_ms=elapsed()
                    )

                destination = urljoin(current, location)
                hop = Redirect(current, destination, response.status_code)

                # 由调用方决定是否跟随这一跳（robots / 去重 / 主机限速）
                refused = redirect_guard(hop) if redirect_guard is not None else None
                if refused:
                    return FetchResult.failure(
                        url, FetchErrorKind.REDIRECT_LIMIT,
                        f"重定向目标未跟随({refused}): {destination}",
                        final_url=current, redirects=redirects + [hop], elapsed_ms=elapsed()
                    )

                redirects.append(hop)
                current = destination
                continue

            if response.status_code >= 400:
                response.close()
                return FetchResult.failure(
                    url, FetchErrorKind.HTTP_ERROR, f"HTTP {response.status_code}",
                    final_url=current, status_code=response.status_code,
                    redirects=redirects, elapsed_ms=elapsed()
                )

            try:
                content = self._decode(response)
            except requests.exceptions.RequestException as e:
                return FetchResult.failure(
                    url, FetchErrorKind.CONNECTION, f"读取响应失败: {str(e)}",
                    final_url=current, redirects=redirects, elapsed_ms=elapsed()
                )

            return FetchResult(
                url=url,
                final_url=current,
                status_code=response.status_code,
                headers=dict(response.headers),
                content=content,
                content_type=response.headers.get('Content-Type', ''),
                redirects=redirects,
                elapsed_ms=elapsed(),
            )

    def close(self):
        """关闭所有线程的会话，释放连接"""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
