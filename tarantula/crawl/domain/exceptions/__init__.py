# Crawl exceptions module
from .crawl_exceptions import CrawlError, InvalidRunConfigError, RunNotFoundError

__all__ = ['CrawlError', 'InvalidRunConfigError', 'RunNotFoundError']
