"""
爬虫服务的日志配置

按日志类型分目录写文件，每类一个按天轮转的 JSON 文件：
- run_lifecycle/  运行的创建、排空、完成、取消，由 LoggingEventHandler 写入
- crawl_process/  页面结果与链接过滤，由 LoggingEventHandler 写入
- error/          抓取、robots、回调投递的失败，基础设施层直接写入
- performance/    每次抓取的耗时，只写文件

当天文件名为 {日期}_{类型}.log，轮转后的旧文件改名为同样的日期前缀格式。
"""

import logging
import logging.config
import logging.handlers
from pathlib import Path
from datetime import datetime
from typing import Optional, Union

LOG_TYPES = {
    'domain.run_lifecycle': ('run_lifecycle', 30),
    'domain.crawl_process': ('crawl_process', 30),
    'infrastructure.error': ('error', 30),
    'infrastructure.perf': ('performance', 7),
}

def setup_logging(log_dir: Optional[Union[str, Path]] = None, to_file: bool = True) -> None:
    """
    按 LOG_TYPES 组装 dictConfig 并应用

    参数:
        log_dir: 日志根目录，默认为当前工作目录下的 logs/
        to_file: False 时只输出到控制台（测试环境使用）
    """
    log_root_dir = Path(log_dir) if log_dir else Path.cwd() / 'logs'
    today = datetime.now().strftime('%Y-%m-%d')

    handlers = {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
            'level': 'INFO'
        }
    }
    loggers = {}

    for logger_name, (log_type, backup_count) in LOG_TYPES.items():
        logger_handlers = ['console']
        if to_file:
            type_dir = log_root_dir / log_type
            type_dir.mkdir(parents=True, exist_ok=True)
            handler_name = f'{log_type}_file'
            handlers[handler_name] = {
                'class': 'logging.handlers.TimedRotatingFileHandler',
                'filename': str(type_dir / f'{today}_{log_type}.log'),
                'when': 'MIDNIGHT',
                'interval': 1,
                'backupCount': backup_count,
                'encoding': 'utf-8',
                'formatter': 'json'
            }
            logger_handlers = [handler_name, 'console']

        # 性能日志只写文件，不刷控制台
        if logger_name == 'infrastructure.perf' and to_file:
            logger_handlers = [f'{log_type}_file']

        loggers[logger_name] = {
            'handlers': logger_handlers,
            'level': 'WARNING' if logger_name == 'infrastructure.error' else 'INFO',
            'propagate': False
        }

    logging_config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'json': {
                '()': 'pythonjsonlogger.jsonlogger.JsonFormatter',
                'format': '%(asctime)s %(name)s %(levelname)s %(message)s',
                'timestamp': True
            },
            'simple': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            }
        },
        'handlers': handlers,
        'loggers': loggers,
        'root': {
            'level': 'INFO',
            'handlers': ['console']
        }
    }

    logging.config.dictConfig(logging_config)

    if to_file:
        _setup_custom_namer()

    logger = get_run_lifecycle_logger()
    logger.info("日志系统初始化完成", extra={
        'log_root_dir': str(log_root_dir),
        'to_file': to_file
    })

def custom_namer(default_name: str) -> str:
    """
    轮转文件改名：把 TimedRotatingFileHandler 追加的日期后缀移到文件名开头

    /path/logs/error/2025-11-30_error.log.2025-11-29
    ->
    /path/logs/error/2025-11-29_error.log
    """
    path = Path(default_name)
    parts = path.name.split('.')

    # 格式：2025-11-30_error.log.2025-11-29
    if len(parts) == 3 and parts[1] == 'log' and '_' in parts[0]:
        log_type = parts[0].split('_', 1)[1]
        date_suffix = parts[2]
        return str(path.parent / f"{date_suffix}_{log_type}.log")

    return default_name

def _setup_custom_namer():
    """dictConfig 不支持 namer 参数，配置后逐个设置"""
    for logger_name in LOG_TYPES:
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers:
            if isinstance(handler, logging.handlers.TimedRotatingFileHandler):
                handler.namer = custom_namer

# ==================== 各类 Logger ====================

def get_run_lifecycle_logger() -> logging.Logger:
    """运行生命周期"""
    return logging.getLogger('domain.run_lifecycle')

def get_crawl_process_logger() -> logging.Logger:
    """页面结果与链接过滤"""
    return logging.getLogger('domain.crawl_process')

def get_error_logger() -> logging.Logger:
    """抓取 / robots / 回调失败"""
    return logging.getLogger('infrastructure.error')

def get_performance_logger() -> logging.Logger:
    return logging.getLogger('infrastructure.perf')
