from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .crawl_task import CrawlTask


class RejectReason(Enum):
    DUPLICATE = "DUPLICATE"
    DEPTH_EXCEEDED = "DEPTH_EXCEEDED"
    SCHEME_UNSUPPORTED = "SCHEME_UNSUPPORTED"
    MALFORMED = "MALFORMED"


@dataclass(frozen=True)
class OfferResult:
    """
    前沿队列 offer 的结果：被拒绝不是错误，只是正常的过滤结果
    """
    accepted: bool
    task: Optional[CrawlTask] = None
    reason: Optional[RejectReason] = None

    @classmethod
    def accept(cls, task: CrawlTask) -> "OfferResult":
        return cls(accepted=True, task=task)

    @classmethod
    def reject(cls, reason: RejectReason) -> "OfferResult":
        return cls(accepted=False, reason=reason)
