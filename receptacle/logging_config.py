"""
Logging configuration for Receptacle Rules.

Provides centralized structured logging setup with JSON output for production
and human-readable output for development. Each evaluation runs inside a
correlation scope, so every event emitted while one entity is evaluated
carries the same correlation_id.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional

import structlog
from structlog.types import EventDict, Processor

if TYPE_CHECKING:
    from receptacle.core.rules import EvaluationResult


LOGGER_PREFIX = "receptacle"

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def add_correlation_id(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """structlog processor: copy the active correlation ID into the event."""
    correlation_id = correlation_id_var.get()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set (or generate) the correlation ID for the current context and return it."""
    correlation_id = correlation_id or uuid.uuid4().hex
    correlation_id_var.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    correlation_id_var.set(None)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Run a block under a correlation ID, restoring the previous one afterwards.

    Scopes nest: an inner scope does not clobber the ID of the evaluation
    that opened the outer one.
    """
    token = correlation_id_var.set(correlation_id or uuid.uuid4().hex)
    try:
        yield correlation_id_var.get()
    finally:
        correlation_id_var.reset(token)


def _build_handler(level: int, log_file: Optional[Path]) -> logging.Handler:
    if log_file is None:
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
    else:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _processors(json_format: bool) -> List[Processor]:
    renderer: Processor = (
        structlog.processors.JSONRenderer(sort_keys=True)
        if json_format
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_correlation_id,
        structlog.processors.format_exc_info,
        renderer,
    ]


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    json_format: bool = True,
) -> None:
    """
    Configure structured logging for Receptacle Rules.

    Only the ``receptacle`` logger tree is configured; loggers belonging to
    other libraries keep whatever the host application set up.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to log file. If None, logs go to stderr.
        json_format: If True, use JSON format. If False, use human-readable format.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    package_logger = logging.getLogger(LOGGER_PREFIX)
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.addHandler(_build_handler(numeric_level, log_file))
    package_logger.setLevel(numeric_level)
    package_logger.propagate = False

    structlog.configure(
        processors=_processors(json_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger under the ``receptacle`` logger tree."""
    if name != LOGGER_PREFIX and not name.startswith(LOGGER_PREFIX + "."):
        name = f"{LOGGER_PREFIX}.{name}"
    return structlog.get_logger(name)


# Convenience functions for common logging patterns

def log_evaluation_result(
    logger: structlog.stdlib.BoundLogger,
    entity_id: str,
    result: "EvaluationResult",
    item_count: int,
    **kwargs: Any,
) -> None:
    """
    Log the outcome of evaluating one entity's items.

    Args:
        logger: Logger instance
        entity_id: Entity whose rules were evaluated
        result: EvaluationResult returned by the rule engine
        item_count: Number of items that were evaluated
        **kwargs: Additional context to log
    """
    log_data: Dict[str, Any] = {
        "event_type": "rule_evaluation",
        "entity_id": entity_id,
        "item_count": item_count,
        "delete_count": len(result.items_to_delete),
        "archive_count": len(result.items_to_archive),
        "attachment_count": len(result.attachments_to_save),
        "elevated_count": len(result.elevated_importance),
    }

    log_data.update(kwargs)

    logger.info("rule_evaluation", **log_data)


def log_snapshot_load(
    logger: structlog.stdlib.BoundLogger,
    source: str,
    kind: str,
    success: bool,
    count: Optional[int] = None,
    reason: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """
    Log loading of entity or item snapshots from a file.

    Args:
        logger: Logger instance
        source: Path the snapshots were read from
        kind: Snapshot kind ("entity" or "items")
        success: Whether loading succeeded
        count: Number of snapshots loaded
        reason: Reason for failure if not successful
        **kwargs: Additional context to log
    """
    log_data: Dict[str, Any] = {
        "event_type": "snapshot_load",
        "source": source,
        "kind": kind,
        "success": success,
    }

    if count is not None:
        log_data["count"] = count
    if reason is not None:
        log_data["reason"] = reason

    log_data.update(kwargs)

    if success:
        logger.debug("snapshot_load", **log_data)
    else:
        logger.warning("snapshot_load_failed", **log_data)
