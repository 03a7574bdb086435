from dataclasses import dataclass


@dataclass(frozen=True)
class AcquireResult:
    """
    主机限速器的申请结果
    granted 为 False 时，retry_after 表示调用方至少需要等待的秒数
    """
    granted: bool
    retry_after: float = 0.0

    @classmethod
    def grant(cls) -> "AcquireResult":
        return cls(granted=True)

    @classmethod
    def deny(cls, retry_after: float) -> "AcquireResult":
        return cls(granted=False, retry_after=max(0.0, retry_after))
