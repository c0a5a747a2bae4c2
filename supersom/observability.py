"""
Observability infrastructure for Super-SOM
Provides structured logging, metrics and tracing
"""

import logging
import os
import time
import uuid
from contextlib import contextmanager

import psutil
import structlog
from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
)


# Prometheus Metrics
TRAINING_DURATION = Histogram(
    "supersom_training_duration_seconds",
    "Super-SOM training duration in seconds",
    ["rows", "cols"],
)

TRAINING_STEPS = Counter(
    "supersom_training_steps_total", "Total training steps completed"
)

MODELS_FINALIZED = Counter(
    "supersom_models_finalized_total", "Total number of models finalized"
)

QUERIES_TOTAL = Counter("supersom_queries_total", "Total best-match queries")

UNKNOWN_CATEGORIES = Counter(
    "supersom_unknown_categories_total",
    "Queries rejected because of an unknown category",
    ["layer"],
)

SYSTEM_MEMORY_USAGE = Gauge(
    "supersom_system_memory_usage_bytes", "System memory usage in bytes"
)

SYSTEM_CPU_USAGE = Gauge(
    "supersom_system_cpu_usage_percent", "System CPU usage percentage"
)


class CorrelationIDProcessor:
    """Add correlation ID to log entries"""

    def __call__(self, logger, method_name, event_dict):
        if "correlation_id" not in event_dict:
            event_dict["correlation_id"] = "unknown"
        return event_dict


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """Configure structured logging with structlog"""

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        CorrelationIDProcessor(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )


def setup_logging_from_env() -> None:
    """Configure logging from the LOG_LEVEL and LOG_FORMAT environment variables"""
    setup_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        json_format=os.getenv("LOG_FORMAT", "json").lower() == "json",
    )


def get_correlation_id() -> str:
    """Generate a new correlation ID"""
    return str(uuid.uuid4())


@contextmanager
def trace_operation(operation_name: str, **extra_context):
    """Context manager for tracing operations with metrics and logging"""
    logger = structlog.get_logger()
    correlation_id = get_correlation_id()
    start_time = time.time()

    logger.info(
        "Operation started",
        operation=operation_name,
        correlation_id=correlation_id,
        **extra_context,
    )

    try:
        yield correlation_id
        duration = time.time() - start_time
        logger.info(
            "Operation completed",
            operation=operation_name,
            correlation_id=correlation_id,
            duration_seconds=duration,
            **extra_context,
        )
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            "Operation failed",
            operation=operation_name,
            correlation_id=correlation_id,
            duration_seconds=duration,
            error=str(e),
            error_type=type(e).__name__,
            **extra_context,
        )
        raise


def update_system_metrics():
    """Update system-level metrics"""
    try:
        memory_info = psutil.virtual_memory()
        SYSTEM_MEMORY_USAGE.set(memory_info.used)

        cpu_percent = psutil.cpu_percent(interval=None)
        SYSTEM_CPU_USAGE.set(cpu_percent)

    except (psutil.Error, OSError) as e:
        logger = structlog.get_logger()
        logger.error("Failed to update system metrics", error=str(e))


def get_metrics() -> bytes:
    """Get Prometheus metrics in text format"""
    update_system_metrics()
    return generate_latest()


def log_training_metrics(rows: int, cols: int, duration: float, steps: int):
    """Log training metrics to Prometheus"""
    TRAINING_DURATION.labels(rows=str(rows), cols=str(cols)).observe(duration)
    TRAINING_STEPS.inc(steps)


def log_model_finalized():
    MODELS_FINALIZED.inc()


def log_query_metrics(count: int = 1):
    """Log best-match query metrics to Prometheus"""
    QUERIES_TOTAL.inc(count)


def log_unknown_category(layer: str):
    UNKNOWN_CATEGORIES.labels(layer=layer).inc()


__all__ = [
    "CONTENT_TYPE_LATEST",
    "setup_logging",
    "setup_logging_from_env",
    "get_correlation_id",
    "trace_operation",
    "update_system_metrics",
    "get_metrics",
    "log_training_metrics",
    "log_model_finalized",
    "log_query_metrics",
    "log_unknown_category",
]
