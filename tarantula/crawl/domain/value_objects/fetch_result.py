from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class FetchErrorKind(Enum):
    TIMEOUT = "TIMEOUT"
    CONNECTION = "CONNECTION"
    REDIRECT_LIMIT = "REDIRECT_LIMIT"
    HTTP_ERROR = "HTTP_ERROR"


@dataclass(frozen=True)
class Redirect:
    """一次重定向跳转"""
    source: str
    destination: str
    status_code: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "source": self.source,
            "destination": self.destination,
            "status_code": self.status_code,
        }


@dataclass
class FetchResult:
    """
    页面抓取结果
    成功时 error_kind 为 None；失败时 content 为空，
    HTTP_ERROR 的 status_code 为服务器返回的状态码，其余失败为 0
    """
    url: str
    final_url: str
    status_code: int = 0
    headers: Dict[str, str] = field(default_factory=dict)
    content: str = ""
    content_type: str = ""
    redirects: List[Redirect] = field(default_factory=list)
    error_kind: Optional[FetchErrorKind] = None
    error_message: Optional[str] = None
    elapsed_ms: float = 0.0

    @property
    def is_success(self) -> bool:
        return self.error_kind is None

    @property
    def is_html(self) -> bool:
        """缺少 Content-Type 时按HTML处理"""
        if not self.content_type:
            return True
        content_type = self.content_type.lower()
        return "html" in content_type

    @classmethod
    def failure(
        cls,
        url: str,
        kind: FetchErrorKind,
        message: str,
        final_url: Optional[str] = None,
        status_code: int = 0,
        redirects: Optional[List[Redirect]] = None,
        elapsed_ms: float = 0.0,
    ) -> "FetchResult":
        return cls(
            url=url,
            final_url=final_url or url,
            status_code=status_code,
            redirects=list(redirects or []),
            error_kind=kind,
            error_message=message,
            elapsed_ms=elapsed_ms,
        )
