import logging
from logging.handlers import RotatingFileHandler
import os
import sys

from contract_monitor.config.base_config import LoggingConfig

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
PROJECT_NAME = "contract_monitor"
LOG_DIR = os.path.join(PROJECT_ROOT, "logs")
LOG_PATH = os.path.join(LOG_DIR, f"{PROJECT_NAME}.log")


def _resolve_log_file() -> str:
    log_file = LoggingConfig.get("file")
    if log_file is None:
        return LOG_PATH
    if not log_file:
        # 空字符串表示只输出到控制台
        return ""
    if not os.path.isabs(log_file):
        log_file = os.path.join(PROJECT_ROOT, log_file)
    return log_file


def _resolve_level() -> int:
    level_name = str(LoggingConfig.get("level", "INFO")).upper()
    return getattr(logging, level_name, logging.INFO)


def extended_seconds_to_hms(seconds) -> str:
    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    if days > 0:
        return f"{int(days):d}:{int(hours):02d}:{int(minutes):02d}:{int(seconds):02d}"
    else:
        return f"{int(hours):02d}:{int(minutes):02d}:{int(seconds):02d}"


# get_logger 创建的 logger 名称 -> 调用时显式指定的日志文件
_configured_loggers = {}


def get_logger(logger_name: str, log_file: str = None) -> logging.Logger:
    logger = logging.getLogger(logger_name)

    # 检查logger是否已经有处理器，如果有，直接返回
    if logger.handlers:
        return logger

    _configured_loggers[logger_name] = log_file
    if log_file is None:
        log_file = _resolve_log_file()

    FMT = logging.Formatter("%(asctime)s %(levelname)s %(filename)s:%(lineno)s %(message)s")
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(FMT)

    if log_file:
        os.makedirs(os.path.dirname(log_file), exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(FMT)
        logger.addHandler(file_handler)

    logger.addHandler(console_handler)
    logger.setLevel(_resolve_level())

    # 防止日志传播到根日志器
    logger.propagate = False

    return logger


def reconfigure_loggers() -> None:
    """按当前 LoggingConfig 重建所有已创建 logger 的级别和处理器（重新加载配置后调用）"""
    for logger_name, log_file in list(_configured_loggers.items()):
        logger = logging.getLogger(logger_name)
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        get_logger(logger_name, log_file)
