"""
爬取模块异常定义

只有运行配置非法、运行不存在这类"提交时即可判定"的问题才以异常形式抛出；
单个页面的抓取失败一律记录为 PageResult，不会中断整个运行。
"""


class CrawlError(Exception):
    """爬取模块异常基类"""


class InvalidRunConfigError(CrawlError, ValueError):
    """运行配置非法（种子URL无法解析、参数越界等），在创建任何运行状态之前抛出"""

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message)


class RunNotFoundError(CrawlError, LookupError):
    """指定的运行ID不存在"""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"运行 {run_id} 不存在")
