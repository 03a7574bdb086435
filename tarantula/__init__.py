from typing import Optional

from flask import Flask
from flask_cors import CORS

from .crawl.infrastructure.callback_result_sink_impl import CallbackResultSinkImpl
from .crawl.infrastructure.host_rate_limiter_impl import HostRateLimiterImpl
from .crawl.infrastructure.html_parser_impl import HtmlParserImpl
from .crawl.infrastructure.http_client_impl import HttpClientImpl
from .crawl.infrastructure.robots_txt_parser_impl import RobotsTxtParserImpl
from .crawl.services.crawler_service import CrawlerService
from .crawl.view.crawler_view import bp as crawl_bp
from .shared.event_bus import EventBus
from .shared.event_handlers.logging_handler import LoggingEventHandler
from .shared.settings import Settings


def build_crawler_service(settings: Settings, event_bus: Optional[EventBus] = None) -> CrawlerService:
    """组合根：按进程配置组装爬取协调器及其依赖"""
    http_client = HttpClientImpl(
        timeout=settings.fetch_timeout,
        max_retries=settings.fetch_max_retries
    )
    robots = RobotsTxtParserImpl(http_client, timeout=settings.robots_timeout)
    rate_limiter = HostRateLimiterImpl(
        default_delay=settings.default_crawl_delay,
        max_concurrency=settings.host_concurrency
    )
    sink = CallbackResultSinkImpl(
        workers=settings.delivery_workers,
        queue_size=settings.delivery_queue_size,
        max_retries=settings.delivery_max_retries
    )
    return CrawlerService(
        http_client=http_client,
        robots_parser=robots,
        rate_limiter=rate_limiter,
        html_parser=HtmlParserImpl(),
        result_sink=sink,
        event_bus=event_bus,
        worker_count=settings.worker_count
    )


def create_app(
    settings: Optional[Settings] = None,
    crawler_service: Optional[CrawlerService] = None,
    event_bus: Optional[EventBus] = None
) -> Flask:
    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes

    event_bus = event_bus or EventBus()
    logging_handler = LoggingEventHandler()
    event_bus.subscribe_to_all(logging_handler.handle)

    if crawler_service is None:
        crawler_service = build_crawler_service(settings or Settings.from_env(), event_bus)

    app.extensions["tarantula"] = {
        "crawler_service": crawler_service,
        "event_bus": event_bus,
        "logging_handler": logging_handler,
    }

    app.register_blueprint(crawl_bp)
    return app
