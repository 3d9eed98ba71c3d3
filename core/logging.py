# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# STATUS: Core - Structured logging with run/node context
# PURPOSE: Consistent, queryable logging across planner and apply engine
# CREATED: 17 OCT 2026
# ============================================================================
"""
Structured Logging

Every record carries the run it belongs to and, inside the apply engine,
the node being applied. Output is either one JSON object per line (for
pipelines) or a compact human-readable line (for operators).

Context lives in a contextvar, so each asyncio task applying a node sees
its own node_id even though all tasks share one thread.

Usage:
    from core.logging import get_logger, log_context

    logger = get_logger("orchestrator.engine.apply", ComponentType.ENGINE)

    with log_context(run_id="run-123", node_id="capture_vm"):
        logger.info("Applying node", extra={"group": 2})
"""

import contextvars
import json
import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Union


class ComponentType(str, Enum):
    """Component types for logging categorization."""
    PLANNER = "planner"
    ENGINE = "engine"
    PROVIDER = "provider"
    SERVICE = "service"
    CLI = "cli"


# Fields copied from the active context onto every record
CONTEXT_FIELDS = ("run_id", "deployment_id", "node_id", "resource_type", "component")

_context: contextvars.ContextVar[Optional[Mapping[str, Any]]] = contextvars.ContextVar(
    "fcp_log_context", default=None
)


def get_current_context() -> Dict[str, Any]:
    """Get a copy of the active logging context."""
    return dict(_context.get() or {})


@contextmanager
def log_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """
    Add fields to the logging context for the duration of a block.

    Nested blocks inherit the enclosing fields; None values are ignored so
    callers can pass optional identifiers straight through.

    Example:
        with log_context(run_id="run-123"):
            with log_context(node_id="evidence_storage"):
                logger.info("Applying node")   # run_id and node_id attached
    """
    merged = get_current_context()
    merged.update({key: value for key, value in fields.items() if value is not None})
    token = _context.set(merged)
    try:
        yield dict(merged)
    finally:
        _context.reset(token)


class ContextFilter(logging.Filter):
    """Stamps context fields onto records that do not already carry them."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _context.get() or {}
        for key in CONTEXT_FIELDS:
            if getattr(record, key, None) is None:
                setattr(record, key, context.get(key))
        return True


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; context fields are top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_record_context(record))

        data = getattr(record, "data", None)
        if data:
            entry["data"] = data

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry["where"] = f"{record.filename}:{record.lineno}"
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """
    Compact formatter for terminals.

    12:04:31 INFO     [run-1/capture_vm] orchestrator.engine.apply: Applying node
    """

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        context = _record_context(record)
        scope = "/".join(context[key] for key in ("run_id", "node_id") if key in context)
        prefix = f"[{scope}] " if scope else ""

        line = f"{clock} {record.levelname:<8} {prefix}{record.name}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that moves caller extras under record.data.

    Keeps arbitrary keys (e.g. "name", "message") from colliding with
    LogRecord attributes.
    """

    def process(self, msg, kwargs):
        extra: Dict[str, Any] = {"data": dict(kwargs.get("extra") or {})}
        if self.extra.get("component"):
            extra["component"] = self.extra["component"]
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(
    name: str,
    component: Optional[ComponentType] = None,
) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (e.g., "orchestrator.engine.apply")
        component: Component tag added to every record from this logger

    Returns:
        ContextLogger instance
    """
    tag = component.value if component is not None else None
    return ContextLogger(logging.getLogger(name), {"component": tag})


def configure_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = False,
    stream=None,
) -> logging.Handler:
    """
    Install a single root handler.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: JSON lines instead of human format (also LOG_FORMAT=json)
        stream: Output stream (defaults to stderr so stdout stays parseable)

    Returns:
        The installed handler
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_output or os.getenv("LOG_FORMAT", "").lower() == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = HumanFormatter()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # SDK transports are chatty at INFO
    logging.getLogger("azure").setLevel(max(level, logging.WARNING))
    return handler


# ============================================================================
# CHECKPOINT LOGGING
# ============================================================================

_checkpoint_logger = get_logger("checkpoint")


def log_checkpoint(name: str, data: Optional[Dict[str, Any]] = None) -> None:
    """
    Log a named checkpoint.

    Checkpoints (plan_built, group_scheduled, node_satisfied, node_failed,
    run_completed) are fixed markers a log query can use to reconstruct a
    run. The active context supplies run_id and node_id.
    """
    _checkpoint_logger.info(f"CHECKPOINT: {name}", extra={"checkpoint": name, **(data or {})})


__all__ = [
    "ComponentType",
    "CONTEXT_FIELDS",
    "ContextFilter",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
