from dataclasses import dataclass, fields
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from ..exceptions import InvalidRunConfigError

DEFAULT_USER_AGENT = "tarantula"


@dataclass(frozen=True)
class RunConfig:
    """
    单次爬取运行的配置，运行期间不可变
    """
    url: str
    ignore_redirects: bool = False
    maximum_redirects: int = 10
    maximum_depth: int = 16
    ignore_robots_txt: bool = False
    keep_html_in_memory: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    crawl_delay_ms: Optional[int] = None  # 同一主机两次请求的最小间隔，None 使用进程默认值
    callback: Optional[str] = None  # 结果回调地址，None 表示只记录日志

    def __post_init__(self):
        """
        数据验证
        """
        if not isinstance(self.url, str) or not self.url.strip():
            raise InvalidRunConfigError("url 不能为空", field="url")

        for name in ("maximum_redirects", "maximum_depth"):
            value = getattr(self, name)
            # bool 是 int 的子类，需要单独排除
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidRunConfigError(f"{name} 必须是整数", field=name)
            if value < 0:
                raise InvalidRunConfigError(f"{name} 不能为负数: {value}", field=name)

        for name in ("ignore_redirects", "ignore_robots_txt", "keep_html_in_memory"):
            if not isinstance(getattr(self, name), bool):
                raise InvalidRunConfigError(f"{name} 必须是布尔值", field=name)

        if not isinstance(self.user_agent, str) or not self.user_agent.strip():
            raise InvalidRunConfigError("user_agent 不能为空", field="user_agent")

        if self.crawl_delay_ms is not None:
            if isinstance(self.crawl_delay_ms, bool) or not isinstance(self.crawl_delay_ms, int):
                raise InvalidRunConfigError("crawl_delay_ms 必须是整数", field="crawl_delay_ms")
            if self.crawl_delay_ms < 0:
                raise InvalidRunConfigError(
                    f"crawl_delay_ms 不能为负数: {self.crawl_delay_ms}", field="crawl_delay_ms"
                )

        if self.callback is not None:
            parsed = urlparse(self.callback)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise InvalidRunConfigError(
                    f"callback 必须是 http(s) 地址: {self.callback}", field="callback"
                )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunConfig":
        """
        从JSON请求体构造配置

        参数:
            data: 请求体字典，未提供的字段使用默认值；
                  兼容 callback_url 作为 callback 的别名
        返回:
            RunConfig
        """
        if not isinstance(data, dict):
            raise InvalidRunConfigError("请求体必须是JSON对象")

        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known and v is not None}
        if "callback" not in kwargs and data.get("callback_url"):
            kwargs["callback"] = data["callback_url"]

        if "url" not in kwargs:
            raise InvalidRunConfigError("url is required", field="url")

        return cls(**kwargs)

    @property
    def crawl_delay(self) -> Optional[float]:
        """crawl_delay_ms 换算为秒"""
        if self.crawl_delay_ms is None:
            return None
        return self.crawl_delay_ms / 1000

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
