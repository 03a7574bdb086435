# infrastructure/callback_result_sink_impl.py
import logging
import queue
import threading
import time
import zlib
from typing import List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..domain.demand_interface.i_result_sink import IResultSink
from ..domain.value_objects.page_result import PageResult
from ..domain.value_objects.run_config import RunConfig
from tarantula.shared.logging_config import get_error_logger, get_performance_logger

logger = logging.getLogger(__name__)

# 队列中的停止信号
_STOP = object()


class CallbackResultSinkImpl(IResultSink):
    """
    回调结果投递实现

    工作线程只把结果放入有界队列（不阻塞）；
    每个投递线程有自己的队列和 requests 会话，以 JSON POST 到运行配置的 callback 地址。
    同一运行的结果按 run_id 固定分配到一个投递线程，回调方收到的顺序与发出顺序一致，
    完成通知总在该运行的最后一个页面结果之后。
    队列已满时丢弃结果并记录错误日志。
    """

    def __init__(
        self,
        workers: int = 2,
        queue_size: int = 1000,
        max_retries: int = 3,
        timeout: float = 10,
        retry_backoff: float = 0.5
    ):
        """
        参数:
            workers: 投递线程数
            queue_size: 每个投递线程的队列容量
            max_retries: 单次投递的最大重试次数（连接失败/5xx）
            timeout: 回调请求超时(秒)
            retry_backoff: 重试间隔倍数
        """
        if workers < 1:
            raise ValueError(f"workers 至少为1: {workers}")

        self._queues: List["queue.Queue"] = [queue.Queue(maxsize=queue_size) for _ in range(workers)]
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff
        self._closed = False
        self._lock = threading.Lock()

        self._local = threading.local()
        self._sessions: List[requests.Session] = []

        self._delivered = 0
        self._failed = 0
        self._dropped = 0

        self._threads: List[threading.Thread] = []
        for i, work_queue in enumerate(self._queues):
            thread = threading.Thread(
                target=self._delivery_loop,
                args=(work_queue,),
                name=f"result-sink-{i}",
                daemon=True
            )
            thread.start()
            self._threads.append(thread)

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({'Content-Type': 'application/json'})
        retry_strategy = Retry(
            total=self._max_retries,
            backoff_factor=self._retry_backoff,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["POST"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    @property
    def _session(self) -> requests.Session:
        """requests.Session 不保证线程安全，每个投递线程一个"""
        session = getattr(self._local, 'session', None)
        if session is None:
            session = self._create_session()
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def deliver(self, result: PageResult, config: RunConfig) -> bool:
        if not config.callback:
            logger.debug(f"运行 {result.run_id} 未配置回调地址，跳过投递: {result.url}")
            return False
        return self._enqueue(config.callback, result.to_payload(), result.run_id)

    def deliver_completion(self, run_id: str, config: RunConfig, summary: dict) -> bool:
        if not config.callback:
            return False
        payload = {
            "event": "complete",
            "run_id": run_id,
            "status": summary.get("status"),
            "pages": summary.get("pages", 0),
            "failures": summary.get("failures", 0),
        }
        return self._enqueue(config.callback, payload, run_id)

    def _queue_for(self, run_id: str) -> "queue.Queue":
        return self._queues[zlib.crc32(run_id.encode('utf-8')) % len(self._queues)]

    def _enqueue(self, callback: str, payload: dict, run_id: str) -> bool:
        with self._lock:
            if self._closed:
                logger.warning(f"投递器已关闭，丢弃运行 {run_id} 的结果")
                return False
            try:
                self._queue_for(run_id).put_nowait((callback, payload))
                return True
            except queue.Full:
                self._dropped += 1
                get_error_logger().error(
                    f"投递队列已满，丢弃运行 {run_id} 的结果",
                    extra={'component': 'result_sink', 'run_id': run_id, 'callback': callback}
                )
                return False

    def _delivery_loop(self, work_queue: "queue.Queue"):
        while True:
            item = work_queue.get()
            try:
                if item is _STOP:
                    return
                callback, payload = item
                self._post(callback, payload)
            finally:
                work_queue.task_done()

    def _post(self, callback: str, payload: dict) -> bool:
        start = time.perf_counter()
        try:
            response = self._session.post(callback, json=payload, timeout=self._timeout)
        except requests.exceptions.RequestException as e:
            self._count(failed=True)
            get_error_logger().error(
                f"回调投递失败 {callback}: {str(e)}",
                extra={'component': 'result_sink', 'run_id': payload.get('run_id'), 'callback': callback}
            )
            return False

        elapsed_ms = (time.perf_counter() - start) * 1000
        get_performance_logger().info(
            f"回调投递 {callback} 耗时 {elapsed_ms:.1f}ms",
            extra={'callback': callback, 'status_code': response.status_code, 'elapsed_ms': round(elapsed_ms, 2)}
        )

        if not response.ok:
            self._count(failed=True)
            get_error_logger().error(
                f"回调投递失败 {callback}: HTTP {response.status_code}",
                extra={'component': 'result_sink', 'run_id': payload.get('run_id'), 'callback': callback}
            )
            return False

        self._count(failed=False)
        return True

    def _count(self, failed: bool):
        with self._lock:
            if failed:
                self._failed += 1
            else:
                self._delivered += 1

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "delivered": self._delivered,
                "failed": self._failed,
                "dropped": self._dropped,
                "queued": sum(q.qsize() for q in self._queues),
            }

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        等待队列中的结果全部投递完毕

        返回:
            False 表示超时
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while any(q.unfinished_tasks for q in self._queues):
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def close(self, timeout: Optional[float] = None) -> None:
        """投递完队列中剩余的结果后停止投递线程"""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        for work_queue in self._queues:
            # 停止信号必须入队，即使队列已满也阻塞等待
            work_queue.put(_STOP)
        for thread in self._threads:
            thread.join(timeout)

        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
