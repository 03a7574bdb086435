"""
进程级配置
- 单次爬取的参数全部在 RunConfig 中；这里只放整个进程共享的参数
  （工作线程数、单主机并发上限、默认抓取间隔、超时、回调投递队列等）。
- 从当前工作目录的 .env 与环境变量读取，键名统一加 TARANTULA_ 前缀。
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "TARANTULA_"


def _env_str(name: str, default: str) -> str:
    return os.getenv(ENV_PREFIX + name, default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"环境变量 {ENV_PREFIX + name} 不是整数: {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"环境变量 {ENV_PREFIX + name} 不是数字: {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    worker_count: int = 4
    host_concurrency: int = 2
    default_crawl_delay: float = 1.0  # 秒，与 robots.txt 的 Crawl-delay 取较大值
    fetch_timeout: float = 10.0
    robots_timeout: float = 5.0
    fetch_max_retries: int = 2
    delivery_workers: int = 2
    delivery_queue_size: int = 1000
    delivery_max_retries: int = 3
    log_dir: str = "logs"
    log_to_file: bool = True

    def __post_init__(self):
        if self.worker_count < 1:
            raise ValueError("worker_count 必须 >= 1")
        if self.host_concurrency < 1:
            raise ValueError("host_concurrency 必须 >= 1")
        if self.default_crawl_delay < 0:
            raise ValueError("default_crawl_delay 不能为负数")
        if self.delivery_workers < 1:
            raise ValueError("delivery_workers 必须 >= 1")
        if self.delivery_queue_size < 1:
            raise ValueError("delivery_queue_size 必须 >= 1")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """
        读取 .env 与环境变量

        参数:
            env_file: .env 文件路径，默认使用当前工作目录下的 .env
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        load_dotenv(env_path)

        defaults = cls()
        return cls(
            worker_count=_env_int("WORKER_COUNT", defaults.worker_count),
            host_concurrency=_env_int("HOST_CONCURRENCY", defaults.host_concurrency),
            default_crawl_delay=_env_float("DEFAULT_CRAWL_DELAY", defaults.default_crawl_delay),
            fetch_timeout=_env_float("FETCH_TIMEOUT", defaults.fetch_timeout),
            robots_timeout=_env_float("ROBOTS_TIMEOUT", defaults.robots_timeout),
            fetch_max_retries=_env_int("FETCH_MAX_RETRIES", defaults.fetch_max_retries),
            delivery_workers=_env_int("DELIVERY_WORKERS", defaults.delivery_workers),
            delivery_queue_size=_env_int("DELIVERY_QUEUE_SIZE", defaults.delivery_queue_size),
            delivery_max_retries=_env_int("DELIVERY_MAX_RETRIES", defaults.delivery_max_retries),
            log_dir=_env_str("LOG_DIR", defaults.log_dir),
            log_to_file=_env_bool("LOG_TO_FILE", defaults.log_to_file),
        )
