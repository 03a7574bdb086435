# shared/event_handlers/logging_handler.py
import logging
import threading
from collections import deque
from typing import Dict, List, Optional

from .base_event_handler import BaseEventHandler, LIFECYCLE_EVENTS
from tarantula.shared.domain.events import DomainEvent
from tarantula.shared.logging_config import (
    get_run_lifecycle_logger,
    get_crawl_process_logger,
)

# 处理器级别 -> logging 级别；SUCCESS 没有对应的标准级别，按 INFO 写入
_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "SUCCESS": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


class LoggingEventHandler(BaseEventHandler):
    """
    日志事件处理器
    职责：
    1. 捕获领域事件并转换为日志格式
    2. 写入对应的业务日志（生命周期 / 爬取过程）
    3. 按运行ID分组保存最近的日志，供API查询
    """

    def __init__(self, max_logs_per_run: int = 1000):
        """
        参数:
            max_logs_per_run: 每个运行最多保留的日志条数（超出则丢弃最旧的）
        """
        self._run_logs: Dict[str, deque] = {}
        self._max_logs_per_run = max_logs_per_run
        # 多个工作线程同时发布事件
        self._lock = threading.Lock()

        self._lifecycle_logger = get_run_lifecycle_logger()
        self._process_logger = get_crawl_process_logger()

    def handle(self, event: DomainEvent) -> None:
        """转换为日志格式，写入日志并保存到内存"""
        log_entry = self._format_event_to_log(event)
        run_id = log_entry["run_id"]

        with self._lock:
            logs = self._run_logs.get(run_id)
            if logs is None:
                logs = deque(maxlen=self._max_logs_per_run)
                self._run_logs[run_id] = logs
            logs.append(log_entry)

        target = self._lifecycle_logger if event.event_type in LIFECYCLE_EVENTS else self._process_logger
        target.log(
            _LEVELS.get(log_entry["level"], logging.INFO),
            log_entry["message"],
            extra={
                "run_id": run_id,
                "event_type": log_entry["event_type"],
                "event_data": log_entry["data"],
            }
        )

# -------------------- 日志查询接口 --------------------

    def get_logs(self, run_id: str, last_n: Optional[int] = None) -> List[dict]:
        """
        获取运行日志

        参数:
            run_id: 运行ID
            last_n: 获取最近N条，None表示全部
        """
        with self._lock:
            logs = list(self._run_logs.get(run_id, ()))
        if last_n:
            return logs[-last_n:]
        return logs

    def get_all_run_ids(self) -> List[str]:
        with self._lock:
            return list(self._run_logs.keys())

    def get_logs_by_level(self, run_id: str, level: str) -> List[dict]:
        """
        获取指定级别的日志

        参数:
            level: 日志级别 (DEBUG/INFO/SUCCESS/WARNING/ERROR)
        """
        return [log for log in self.get_logs(run_id) if log['level'] == level]

    def get_error_logs(self, run_id: str) -> List[dict]:
        return self.get_logs_by_level(run_id, 'ERROR')

    def clear_logs(self, run_id: str) -> None:
        with self._lock:
            if run_id in self._run_logs:
                self._run_logs[run_id].clear()

    def has_errors(self, run_id: str) -> bool:
        return len(self.get_error_logs(run_id)) > 0
