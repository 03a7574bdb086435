from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CrawlTask:
    """
    已被前沿队列接收的待抓取URL
    url 为标准化后的形式；host 用于按主机分组与限速
    """
    run_id: str
    url: str
    depth: int
    host: str
    referrer: Optional[str] = None  # 发现该链接的页面（最终URL）
