# infrastructure/html_parser_impl.py
import logging
from typing import List

from bs4 import BeautifulSoup

from ..domain.demand_interface.i_html_parser import IHtmlParser
from .url_normalizer import normalize_url, is_supported_scheme

logger = logging.getLogger(__name__)

# 不指向可抓取文档的 href 前缀
SKIPPED_PREFIXES = ('#', 'javascript:', 'mailto:', 'tel:', 'data:')


class HtmlParserImpl(IHtmlParser):
    """基于BeautifulSoup的HTML解析器实现"""

    def __init__(self, parser: str = 'html.parser'):
        """
        参数:
            parser: BeautifulSoup 解析器，默认使用Python内置的 'html.parser'
        """
        self._parser = parser

    def extract_links(self, html: str, base_url: str) -> List[str]:
        """
        提取所有 <a href> 链接，以 base_url 解析相对地址后标准化

        只返回 http(s) 链接；无法解析的 href 被忽略
        """
        if not html or not base_url:
            return []

        try:
            soup = BeautifulSoup(html, self._parser)
        except Exception as e:
            # 解析失败返回空列表，不抛出异常
            logger.warning(f"HTML链接提取失败: {base_url} - {str(e)}")
            return []

        links: List[str] = []
        seen = set()

        for a_tag in soup.find_all('a', href=True):
            href = a_tag['href'].strip()

            if not href or href.lower().startswith(SKIPPED_PREFIXES):
                continue

            try:
                normalized_url = normalize_url(href, base_url)
            except ValueError:
                continue

            if not is_supported_scheme(normalized_url):
                continue

            if normalized_url not in seen:
                seen.add(normalized_url)
                links.append(normalized_url)

        return links
