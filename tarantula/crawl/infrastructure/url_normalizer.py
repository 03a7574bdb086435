"""
URL标准化
- 协议、主机小写；去除默认端口；去除 fragment；
- 相对地址以来源页面的最终URL为基准解析；
- 空路径统一为 "/"，使 https://a.com 与 https://a.com/ 视为同一条目。
"""

from typing import Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

SUPPORTED_SCHEMES = ('http', 'https')
DEFAULT_PORTS = {'http': 80, 'https': 443}


def normalize_url(url: str, base_url: Optional[str] = None) -> str:
    """
    标准化URL

    参数:
        url: 原始URL，可以是相对地址
        base_url: 解析相对地址的基准URL

    返回:
        标准化后的URL；非 http(s) 协议只做协议小写和去 fragment

    异常:
        ValueError: 无法解析（空字符串、非法端口、http(s) 缺少主机）
    """
    if url is None or not url.strip():
        raise ValueError("URL为空")

    raw = url.strip()
    if base_url:
        raw = urljoin(base_url, raw)

    parts = urlsplit(raw)
    scheme = parts.scheme.lower()

    if scheme not in SUPPORTED_SCHEMES:
        return urlunsplit((scheme, parts.netloc, parts.path, parts.query, ''))

    host = parts.hostname
    if not host:
        raise ValueError(f"URL缺少主机: {url}")

    # parts.port 对非法端口抛出 ValueError
    port = parts.port
    netloc = f"[{host}]" if ':' in host else host
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"

    path = parts.path or '/'
    return urlunsplit((scheme, netloc, path, parts.query, ''))


def is_supported_scheme(url: str) -> bool:
    return urlsplit(url).scheme.lower() in SUPPORTED_SCHEMES


def host_key(url: str) -> str:
    """
    主机键：标准化URL的 host[:port]，用于前沿队列分组和限速
    """
    return urlsplit(url).netloc


def split_origin(url: str) -> Tuple[str, str]:
    """
    拆分为 (origin, path)

    例如 https://example.com/a/b?x=1 -> ("https://example.com", "/a/b?x=1")
    """
    parts = urlsplit(url)
    origin = f"{parts.scheme}://{parts.netloc}"
    path = parts.path or '/'
    if parts.query:
        path = f"{path}?{parts.query}"
    return origin, path
