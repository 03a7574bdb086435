"""
领域事件基类
放在 shared 中，是因为 event_handlers/ 里的处理器需要识别所有领域事件的共同字段，
而 shared 不依赖任何具体业务模块，写在这里可以让处理器与 crawl 模块解耦。
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict


@dataclass
class DomainEvent:
    """
    所有领域事件的基类
    自动提供时间戳和通用的数据转换接口

    timestamp 使用 kw_only，子类可以继续声明无默认值的字段。
    """
    run_id: str
    timestamp: datetime = field(default_factory=datetime.now, kw_only=True)

    @property
    def event_type(self) -> str:
        """默认使用类名作为事件类型"""
        return self.__class__.__name__

    @property
    def data(self) -> Dict[str, Any]:
        """将事件字段转换为字典，排除基类字段"""
        all_data = asdict(self)
        return {
            k: v for k, v in all_data.items()
            if k not in ('run_id', 'timestamp')
        }
