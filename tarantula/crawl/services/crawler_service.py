"""
模块职责（应用层）
- 编排一次爬取运行的完整生命周期：启动 / 取消 / 完成；
- 为每个运行创建独享的前沿队列和固定数量的工作线程；
- 工作线程执行 取任务 → robots 检查 → 主机限速 → 抓取 → 提取链接 → 投递结果；
- 提供面向接口层的状态查询方法。

设计要点
- 进程级共享的只有 robots 缓存和主机限速状态；其余状态都挂在单个运行的上下文上；
- 工作线程只在前沿队列 take()、网络请求和跨主机重定向的限速名额上等待，等待期间不持有任何共享锁；
- 结果投递交给 ResultSink 的投递线程，回调地址缓慢不会拖慢抓取；
- 运行结束（完成或取消）后丢弃前沿队列和线程，只保留 CrawlRun 摘要供查询。
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ..domain.demand_interface.i_host_rate_limiter import IHostRateLimiter
from ..domain.demand_interface.i_html_parser import IHtmlParser
from ..domain.demand_interface.i_http_client import IHttpClient
from ..domain.demand_interface.i_result_sink import IResultSink
from ..domain.demand_interface.i_robots_txt_parser import IRobotsTxtParser
from ..domain.entity.crawl_run import CrawlRun
from ..domain.exceptions import InvalidRunConfigError, RunNotFoundError
from ..domain.value_objects.crawl_task import CrawlTask
from ..domain.value_objects.fetch_result import FetchResult, Redirect
from ..domain.value_objects.offer_result import RejectReason
from ..domain.value_objects.page_result import PageResult
from ..domain.value_objects.run_config import RunConfig
from ..domain.value_objects.run_status import RunStatus
from ..infrastructure.url_frontier_impl import UrlFrontierImpl
from ..infrastructure.url_normalizer import normalize_url, is_supported_scheme, host_key, split_origin
from tarantula.shared.event_bus import EventBus
from tarantula.shared.logging_config import get_error_logger

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """单个运行的执行上下文，运行结束后整体丢弃"""
    run: CrawlRun
    frontier: UrlFrontierImpl
    workers: List[threading.Thread] = field(default_factory=list)
    supervisor: Optional[threading.Thread] = None


class RedirectGuard:
    """
    抓取过程中逐跳检查重定向目标

    - 目标先经 robots 检查，再在前沿队列中登记为已访问，已知的目标不再跟随；
    - 目标换了主机时归还原主机的限速名额，在新主机上重新申请后才跟随；
    - held_host 是当前持有名额的主机，抓取结束后由调用方归还。
    """

    def __init__(
        self,
        context: RunContext,
        task: CrawlTask,
        politeness: Callable[[RunConfig, str], Tuple[bool, Optional[float]]],
        rate_limiter: IHostRateLimiter
    ):
        self._politeness = politeness
        self._rate_limiter = rate_limiter
        self._context = context
        self.held_host: Optional[str] = task.host

    def __call__(self, hop: Redirect) -> Optional[str]:
        run = self._context.run
        if run.is_cancelled:
            return "cancelled"

        try:
            destination = normalize_url(hop.destination)
        except ValueError:
            return RejectReason.MALFORMED.value
        if not is_supported_scheme(destination):
            return RejectReason.SCHEME_UNSUPPORTED.value

        allowed, crawl_delay = self._politeness(run.config, destination)
        if not allowed:
            run.record_link_filtered(destination, "robots_txt")
            return "robots_txt"

        if not self._context.frontier.claim(destination):
            return RejectReason.DUPLICATE.value

        host = host_key(destination)
        if host != self.held_host:
            self._switch_host(host, crawl_delay)
            if self.held_host is None:
                return "cancelled"
        return None

    def _switch_host(self, host: str, crawl_delay: Optional[float]) -> None:
        limiter = self._rate_limiter
        if self.held_host is not None:
            limiter.release(self.held_host)
            self.held_host = None

        # 已在抓取中途，不能归还任务，只能在此等待新主机的名额
        while not self._context.run.is_cancelled:
            acquired = limiter.try_acquire(host, crawl_delay)
            if acquired.granted:
                self.held_host = host
                return
            time.sleep(min(acquired.retry_after, 1.0))


class CrawlerService:
    """
    应用服务 - 爬取协调器
    职责：
    - 维护运行字典与运行上下文；
    - 驱动工作线程池并判定运行结束；
    - 发布领域事件到事件总线。
    """

    def __init__(
        self,
        http_client: IHttpClient,
        robots_parser: IRobotsTxtParser,
        rate_limiter: IHostRateLimiter,
        html_parser: IHtmlParser,
        result_sink: IResultSink,
        event_bus: Optional[EventBus] = None,
        worker_count: int = 4
    ):
        """
        构造函数注入依赖

        参数:
            http_client: 页面抓取
            robots_parser: robots.txt 解析（进程级缓存）
            rate_limiter: 主机限速（进程级共享）
            html_parser: 链接提取
            result_sink: 结果投递
            event_bus: 事件总线 (可选，便于测试)
            worker_count: 每个运行的工作线程数
        """
        if worker_count < 1:
            raise ValueError(f"worker_count 至少为1: {worker_count}")

        self._http = http_client
        self._robots = robots_parser
        self._rate_limiter = rate_limiter
        self._html = html_parser
        self._sink = result_sink
        self._event_bus = event_bus
        self._worker_count = worker_count

        self._lock = threading.Lock()
        self._runs: Dict[str, CrawlRun] = {}
        self._contexts: Dict[str, RunContext] = {}
        self._finished: Dict[str, threading.Event] = {}
        # 运行结束时前沿队列的最终计数 (pending, in_flight, visited)
        self._final_counts: Dict[str, Tuple[int, int, int]] = {}

# -------------------- 运行生命周期 --------------------

    def start_run(self, config: RunConfig) -> str:
        """
        启动一次爬取运行，立即返回

        返回:
            run_id

        异常:
            InvalidRunConfigError: 种子URL无法解析或不是 http(s)
        """
        try:
            seed = normalize_url(config.url)
        except ValueError as e:
            raise InvalidRunConfigError(f"种子URL无法解析: {config.url} ({e})", field="url")
        if not is_supported_scheme(seed):
            raise InvalidRunConfigError(f"种子URL必须是 http(s): {config.url}", field="url")

        run_id = str(uuid.uuid4())
        run = CrawlRun(id=run_id, config=config)
        frontier = UrlFrontierImpl(run_id=run_id, max_depth=config.maximum_depth)

        offer = frontier.offer(seed, 0)
        if not offer.accepted:
            raise InvalidRunConfigError(f"种子URL被拒绝: {offer.reason.value}", field="url")

        context = RunContext(run=run, frontier=frontier)
        with self._lock:
            self._runs[run_id] = run
            self._contexts[run_id] = context
            self._finished[run_id] = threading.Event()

        run.start()
        self._publish_domain_events(run)

        short_id = run_id[:8]
        for i in range(self._worker_count):
            worker = threading.Thread(
                target=self._worker_loop,
                args=(context,),
                name=f"crawl-{short_id}-{i}",
                daemon=True
            )
            context.workers.append(worker)

        context.supervisor = threading.Thread(
            target=self._supervise,
            args=(context,),
            name=f"crawl-{short_id}-supervisor",
            daemon=True
        )

        for worker in context.workers:
            worker.start()
        context.supervisor.start()

        logger.info(f"运行 {run_id} 已启动: {seed} ({self._worker_count} 个工作线程)")
        return run_id

    def cancel_run(self, run_id: str) -> None:
        """
        取消运行
        已处于终态的运行直接返回；正在处理的任务完成后工作线程退出，其结果不再发出
        """
        with self._lock:
            run = self._runs.get(run_id)
            context = self._contexts.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)

        if not run.cancel():
            return

        if context is not None:
            context.frontier.close()
        self._publish_domain_events(run)

    def wait_for_run(self, run_id: str, timeout: Optional[float] = None) -> bool:
        """
        等待运行结束并完成清理

        返回:
            True 表示运行已处于终态
        """
        with self._lock:
            finished = self._finished.get(run_id)
        if finished is None:
            raise RunNotFoundError(run_id)
        return finished.wait(timeout)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """取消所有活跃运行并停止结果投递"""
        with self._lock:
            contexts = list(self._contexts.values())

        for context in contexts:
            if context.run.cancel("服务关闭"):
                context.frontier.close()
                self._publish_domain_events(context.run)

        for context in contexts:
            if context.supervisor is not None:
                context.supervisor.join(timeout)

        self._sink.close(timeout)

# -------------------- 状态查询 --------------------

    def get_run_status(self, run_id: str) -> dict:
        with self._lock:
            run = self._runs.get(run_id)
            context = self._contexts.get(run_id)
            final_counts = self._final_counts.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)

        if context is not None:
            pending, in_flight, visited = context.frontier.counts()
        elif final_counts is not None:
            pending, in_flight, visited = final_counts
        else:
            pending, in_flight, visited = 0, 0, 0

        status = run.to_summary()
        status.update({
            "visited": visited,
            "pending": pending,
            "in_flight": in_flight,
        })
        return status

    def list_runs(self) -> List[dict]:
        with self._lock:
            runs = list(self._runs.values())
        return [run.to_summary() for run in runs]

    def is_active(self, run_id: str) -> bool:
        """运行上下文是否仍存在（线程尚未清理）"""
        with self._lock:
            return run_id in self._contexts

# ---------------------  内部方法：工作线程 ---------------------

    def _worker_loop(self, context: RunContext) -> None:
        while True:
            task = context.frontier.take()
            if task is None:
                # 已排空或已关闭
                return
            self._process_task(context, task)

    def _process_task(self, context: RunContext, task: CrawlTask) -> None:
        """
        处理一个任务，无论结果如何恰好调用一次 mark_done（被限速归还时除外）
        """
        run = context.run
        frontier = context.frontier
        config = run.config
        requeued = False

        try:
            if run.is_cancelled:
                return

            # 1. robots.txt 检查
            allowed, crawl_delay = self._politeness(config, task.url)
            if not allowed:
                run.record_link_filtered(task.url, "robots_txt")
                return

            # 2. 主机限速：拒绝时放回队列并推迟该主机
            acquired = self._rate_limiter.try_acquire(task.host, crawl_delay)
            if not acquired.granted:
                frontier.requeue(task, acquired.retry_after)
                requeued = True
                return

            # 3. 抓取：重定向逐跳检查；名额在请求结束后立即归还
            guard = RedirectGuard(context, task, self._politeness, self._rate_limiter)
            try:
                fetch = self._http.fetch(
                    task.url,
                    user_agent=config.user_agent,
                    maximum_redirects=config.maximum_redirects,
                    ignore_redirects=config.ignore_redirects,
                    redirect_guard=guard
                )
            finally:
                if guard.held_host is not None:
                    self._rate_limiter.release(guard.held_host)

            # 4. 成功的HTML页面：提取链接并以 depth+1 入队
            links: List[str] = []
            if fetch.is_success and fetch.is_html and not run.is_cancelled:
                links = self._discover_links(context, task, fetch)

            # 5. 记录并投递结果；运行已终止时丢弃
            result = PageResult.from_fetch(
                run_id=run.id,
                depth=task.depth,
                fetch=fetch,
                links=links,
                keep_content=config.keep_html_in_memory
            )
            if run.try_record_page(result):
                self._sink.deliver(result, config)

        except Exception as e:
            get_error_logger().error(
                f"处理任务时发生意外错误 {task.url}: {type(e).__name__} - {str(e)}",
                exc_info=True,
                extra={'component': 'crawler', 'run_id': run.id, 'url': task.url}
            )
            run.record_crawl_error(task.url, f"处理任务失败: {str(e)}", type(e).__name__)

        finally:
            if not requeued:
                frontier.mark_done(task)
            pending, in_flight, _ = frontier.counts()
            run.observe_frontier(pending, in_flight)
            self._publish_domain_events(run)

    def _politeness(self, config: RunConfig, url: str) -> Tuple[bool, Optional[float]]:
        """
        robots 检查，以及该URL所在主机的请求间隔

        返回:
            (是否允许, 间隔秒数)；间隔取 robots Crawl-delay 与运行配置 crawl_delay_ms 的较大值，
            都没有时为 None（限速器使用进程默认值）
        """
        delays = [config.crawl_delay]
        if not config.ignore_robots_txt:
            origin, path = split_origin(url)
            if not self._robots.is_allowed(origin, path, config.user_agent):
                return False, None
            delays.append(self._robots.crawl_delay(origin, config.user_agent))

        delays = [d for d in delays if d is not None]
        return True, max(delays) if delays else None

    def _discover_links(self, context: RunContext, task: CrawlTask, fetch: FetchResult) -> List[str]:
        """提取链接并提交到前沿队列，返回页面中发现的全部链接"""
        try:
            links = self._html.extract_links(fetch.content, fetch.final_url)
        except Exception as e:
            get_error_logger().warning(
                f"链接提取失败 {fetch.final_url}: {str(e)}",
                extra={'component': 'crawler', 'run_id': context.run.id, 'url': fetch.final_url}
            )
            context.run.record_crawl_error(task.url, f"链接提取失败: {str(e)}", "LinkExtractionFailed")
            return []

        for link in links:
            offer = context.frontier.offer(link, task.depth + 1, referrer=fetch.final_url)
            if not offer.accepted and offer.reason != RejectReason.DUPLICATE:
                context.run.record_link_filtered(link, offer.reason.value)

        return links

# ---------------------  内部方法：运行收尾 ---------------------

    def _supervise(self, context: RunContext) -> None:
        """等待所有工作线程退出，完成运行并清理上下文"""
        run = context.run
        try:
            for worker in context.workers:
                worker.join()

            if not run.is_cancelled:
                # 工作线程全部退出且未取消，说明前沿队列已排空
                run.complete()

            self._publish_domain_events(run)

            if run.status == RunStatus.COMPLETED:
                self._sink.deliver_completion(run.id, run.config, run.to_summary())

        finally:
            self._cleanup(context)

    def _cleanup(self, context: RunContext) -> None:
        run_id = context.run.id
        counts = context.frontier.counts()
        with self._lock:
            self._contexts.pop(run_id, None)
            self._final_counts[run_id] = counts
            finished = self._finished.get(run_id)
        if finished is not None:
            finished.set()
        logger.info(f"运行 {run_id} 已结束: {context.run.status.value}")

    def _publish_domain_events(self, run: CrawlRun) -> None:
        """发布运行中积压的领域事件"""
        events = run.pop_uncommitted_events()
        if not self._event_bus:
            return
        for event in events:
            self._event_bus.publish(event)
