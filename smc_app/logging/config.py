"""
Centralized logging configuration for the SMC signal engine.

This module provides standardized logging configuration using structlog
for all components. Detector, composer and lifecycle code should obtain
loggers from here so gate decisions and state transitions share one format.
"""
import logging
import sys
from typing import Any, Optional

import orjson
import structlog
from structlog.types import FilteringBoundLogger

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def render_json(event_dict: Any, **kwargs: Any) -> str:
    """orjson serializer for JSONRenderer; datetimes and str enums render natively."""
    # stdlib handlers expect text, orjson returns bytes
    return orjson.dumps(event_dict, default=kwargs.get("default", str)).decode()


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Configure structlog for the entire application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_json: If True, output one orjson-rendered line per event;
            otherwise human-readable
        include_timestamp: Include timestamp in log output
        include_caller: Include caller information (filename, line number)
        extra_processors: Additional structlog processors to include

    Raises:
        ValueError: If ``level`` is not a known level name
    """
    # Convert string level to logging constant
    level_name = level.upper()
    if level_name not in LEVELS:
        raise ValueError(f"Unknown log level {level!r}, expected one of {', '.join(LEVELS)}")
    log_level = getattr(logging, level_name)

    # Standard library logging carries structlog output and the store's logger
    logging.basicConfig(
        level=log_level,
        stream=sys.stdout,
        format="%(message)s"  # structlog will handle formatting
    )

    # Build processor chain
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ))

    if extra_processors:
        processors.extend(extra_processors)

    # Final formatting processor
    if format_json:
        processors.append(structlog.processors.JSONRenderer(serializer=render_json))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """Module logger, typically ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def get_gating_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger bound for final-decision gate evaluation.

    Every record it emits is part of the audit trail for why an analysis
    run ended in TRADE_SETUP or NO_TRADE.
    """
    return get_logger(name).bind(
        subsystem="gating",
        audit_trail=True
    )


def get_state_logger(name: str) -> FilteringBoundLogger:
    """Get a logger bound for signal and trade lifecycle transitions."""
    return get_logger(name).bind(
        subsystem="state_machine",
        audit_trail=True
    )


def log_gate_decision(
    logger: FilteringBoundLogger,
    gate_name: str,
    passed: bool,
    instrument: str,
    reason: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a gating decision with standardized format.

    Both results log at INFO.

    Args:
        logger: Structlog logger instance
        gate_name: Name of the gate being evaluated
        passed: Whether the gate passed or failed
        instrument: Instrument the analysis run belongs to
        reason: Detailed reason for the decision
        context: Additional context data
    """
    # Use the logger's bind method to avoid keyword conflicts
    bound_logger = logger.bind(
        gate_name=gate_name,
        gate_result="PASS" if passed else "FAIL",
        instrument=instrument,
        reason=reason,
        event="gate_decision"
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("Gate passed" if passed else "Gate failed")


def log_state_transition(
    logger: FilteringBoundLogger,
    signal_id: str,
    from_state: str,
    to_state: str,
    trigger: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a state transition with standardized format.

    Args:
        logger: Structlog logger instance
        signal_id: ID of the signal, trade or owner transitioning
        from_state: Current state
        to_state: Target state
        trigger: What triggered the transition (analysis, price_exit, batch_close, ...)
        context: Additional context data
    """
    bound_logger = logger.bind(
        signal_id=signal_id,
        from_state=from_state,
        to_state=to_state,
        trigger=trigger,
        event="state_transition"
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("State transition")
