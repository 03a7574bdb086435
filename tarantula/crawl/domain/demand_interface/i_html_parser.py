from typing import List
from abc import ABC, abstractmethod


class IHtmlParser(ABC):
    """只负责HTML结构解析，不包含业务判断"""

    @abstractmethod
    def extract_links(self, html: str, base_url: str) -> List[str]:
        """
        提取所有链接并标准化

        参数:
            html: 页面内容
            base_url: 重定向之后的最终URL

        返回:
            去重后的 http(s) 绝对URL列表，保持页面中的出现顺序
        """
        pass
