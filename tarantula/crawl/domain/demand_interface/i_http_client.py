from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..value_objects.fetch_result import FetchResult, Redirect
from ..value_objects.http_response import HttpResponse

# 跟随重定向前的检查：返回 None 表示跟随，返回拒绝原因则停止抓取
RedirectGuard = Callable[[Redirect], Optional[str]]


class IHttpClient(ABC):
    @abstractmethod
    def get(
        self,
        url: str,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None
    ) -> HttpResponse:
        """
        执行简单的HTTP GET请求（自动跟随重定向）
        用途: 获取 robots.txt（retries=0，只尝试一次）
        """
        pass

    @abstractmethod
    def fetch(
        self,
        url: str,
        user_agent: str,
        maximum_redirects: int,
        ignore_redirects: bool = False,
        redirect_guard: Optional[RedirectGuard] = None
    ) -> FetchResult:
        """
        抓取页面，手动跟随重定向并记录跳转链

        参数:
            redirect_guard: 每一跳跟随之前调用；拒绝时以 REDIRECT_LIMIT 失败结束，
                            被拒绝的一跳记录在跳转链末尾

        返回:
            FetchResult；失败被分类为 TIMEOUT / CONNECTION / REDIRECT_LIMIT / HTTP_ERROR，
            不会抛出异常
        """
        pass
