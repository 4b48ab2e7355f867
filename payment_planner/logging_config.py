"""
Logging setup for the planner, the payment history store and their providers.

Every module logs through ``logging.getLogger(__name__)``; ``setup_logging``
routes those records through structlog. Each event is tagged with the
component it came from (``planner``, ``history``, ``providers``), and the
output is JSON lines, or a console rendering at DEBUG.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog

from .config import settings

PACKAGE_LOGGER = "payment_planner"

COMPONENT_LOGGERS: Dict[str, str] = {
    "payment_planner.core.planner": "planner",
    "payment_planner.core.history": "history",
    "payment_planner.providers": "providers",
}

# Quieted to WARNING
NOISY_LOGGERS = ("httpcore", "httpx", "asyncio")


def component_for(logger_name: Optional[str]) -> str:
    for prefix, component in COMPONENT_LOGGERS.items():
        if logger_name == prefix or (logger_name or "").startswith(prefix + "."):
            return component
    return "app"


def add_component(_logger: Any, _method: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("component", component_for(event_dict.get("logger")))
    return event_dict


def setup_logging(log_level: Optional[str] = None, history_log_level: Optional[str] = None) -> None:
    """Configure structlog output for the whole process.

    Args:
        log_level: Override log level (default: from settings.log_level)
        history_log_level: Separate level for the history store, whose pollers
            log on every tick at DEBUG
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    is_dev = level == logging.DEBUG

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_component,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
    if history_log_level:
        history_level = getattr(logging, history_log_level.upper(), level)
        logging.getLogger("payment_planner.core.history").setLevel(history_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
