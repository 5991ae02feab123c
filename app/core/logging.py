import logging
from loguru import logger

from app.core.config import settings

# Chatty libraries are only interesting when debugging
QUIET_LOGGERS = ("web3", "urllib3", "asyncio", "multipart")

# Records from these modules also go to the ledger sink
LEDGER_MODULES = (
    "app.ledger.", "app.services.lock", "app.services.reconciler", "app.services.indexer"
)


class InterceptHandler(logging.Handler):
    """Forwards stdlib records (uvicorn, sqlalchemy, web3) to loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame.f_back and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage())


def _is_ledger_record(record) -> bool:
    return record["name"].startswith(LEDGER_MODULES)


def setup_logging(log_dir: str = "logs"):
    level = "DEBUG" if settings.debug else "INFO"

    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    logging.basicConfig(handlers=[InterceptHandler()], level=level, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.add(
        f"{log_dir}/application.log",
        rotation="500 MB",
        compression="zip",
        level=level,
        backtrace=True,
        diagnose=settings.debug,
        enqueue=True,
    )
    # Lock submissions, receipts and indexer runs, kept longer for audits
    logger.add(
        f"{log_dir}/ledger.log",
        rotation="50 MB",
        retention="90 days",
        level="INFO",
        filter=_is_ledger_record,
        enqueue=True,
    )
