from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .fetch_result import FetchErrorKind, FetchResult, Redirect


class PageStatus(Enum):
    OK = "OK"
    TIMEOUT = "TIMEOUT"
    CONNECTION = "CONNECTION"
    REDIRECT_LIMIT = "REDIRECT_LIMIT"
    HTTP_ERROR = "HTTP_ERROR"

    @classmethod
    def from_error_kind(cls, kind: Optional[FetchErrorKind]) -> "PageStatus":
        if kind is None:
            return cls.OK
        return cls(kind.value)


@dataclass(frozen=True)
class PageResult:
    """
    每个到达终态的抓取尝试对应一个结果，发出后不可变
    """
    run_id: str
    url: str
    final_url: str
    status: PageStatus
    depth: int
    http_status: int = 0
    links: Tuple[str, ...] = ()
    redirects: Tuple[Redirect, ...] = ()
    content: Optional[str] = None  # 仅在 keep_html_in_memory 时保留
    error_message: Optional[str] = None
    elapsed_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_success(self) -> bool:
        return self.status == PageStatus.OK

    @classmethod
    def from_fetch(
        cls,
        run_id: str,
        depth: int,
        fetch: FetchResult,
        links=(),
        keep_content: bool = False,
    ) -> "PageResult":
        return cls(
            run_id=run_id,
            url=fetch.url,
            final_url=fetch.final_url,
            status=PageStatus.from_error_kind(fetch.error_kind),
            depth=depth,
            http_status=fetch.status_code,
            links=tuple(links),
            redirects=tuple(fetch.redirects),
            content=fetch.content if keep_content and fetch.is_success else None,
            error_message=fetch.error_message,
            elapsed_ms=fetch.elapsed_ms,
        )

    def to_payload(self) -> Dict[str, Any]:
        """回调请求体"""
        return {
            "event": "page",
            "run_id": self.run_id,
            "url": self.url,
            "final_url": self.final_url,
            "status": self.status.value,
            "http_status": self.http_status,
            "depth": self.depth,
            "discovered_links": list(self.links),
            "redirects": [r.to_dict() for r in self.redirects],
            "content": self.content,
            "error": self.error_message,
            "elapsed_ms": round(self.elapsed_ms, 2),
            "timestamp": self.timestamp.isoformat(),
        }
