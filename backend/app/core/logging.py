import logging
import sys

from loguru import logger

from app.core.config import settings

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level> | {extra}"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message} | {extra}"

# 标准库 logging 中需要转发到 Loguru 的 logger
_INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "sqlalchemy.engine")


class InterceptHandler(logging.Handler):
    """
    拦截标准库 logging 消息并转发到 Loguru
    """

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # 跳过 logging 模块自身的栈帧，定位真正的调用方
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging():
    """
    配置 Loguru 日志

    业务日志使用事件名 + extra 的形式，例如
    logger.info("invite_code_redeemed", extra={"code": ...})，extra 会随格式一起输出。
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL,
        format=_CONSOLE_FORMAT,
        serialize=settings.LOG_JSON_FORMAT,
        enqueue=settings.LOG_ASYNC,  # 测试环境关闭队列
        backtrace=True,
        diagnose=settings.DEBUG,
    )

    if settings.LOG_FILE_PATH:
        logger.add(
            settings.LOG_FILE_PATH,
            rotation=settings.LOG_ROTATION,
            retention=settings.LOG_RETENTION,
            level=settings.LOG_LEVEL,
            format=_FILE_FORMAT,
            encoding="utf-8",
            enqueue=settings.LOG_ASYNC,
            compression="zip",
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    logging.getLogger("root").setLevel(settings.LOG_LEVEL)

    return logger
