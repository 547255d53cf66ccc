"""
Observability Module - Logging, Metrics, and Health

Provides:
- Structured JSON logging with the acting address attached
- Metrics collection (mutations, rejections, confirmation latency)
- Health check utilities

Configuration:
- HYDROCRED_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- HYDROCRED_LOG_FORMAT: json, text (default: json in production)
- HYDROCRED_PRODUCTION: Enable production mode

Usage:
    from hydrocred.observability import get_logger

    logger = get_logger(__name__)
    logger.info("Credits issued", to=address, amount=3)
"""

import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

# Address of the identity performing the current operation
actor_address_var: ContextVar[str] = ContextVar("actor_address", default="")


# ============================================================
# CONFIGURATION
# ============================================================

def _is_production() -> bool:
    return os.environ.get("HYDROCRED_PRODUCTION", "").lower() in ("1", "true", "yes")


def _get_log_level() -> int:
    level_str = os.environ.get("HYDROCRED_LOG_LEVEL", "INFO").upper()
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return levels.get(level_str, logging.INFO)


def _use_json_logging() -> bool:
    format_str = os.environ.get("HYDROCRED_LOG_FORMAT", "").lower()
    if format_str == "json":
        return True
    if format_str == "text":
        return False
    return _is_production()


# ============================================================
# STRUCTURED LOGGING
# ============================================================

_STANDARD_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.000000+00:00",
        "level": "INFO",
        "logger": "hydrocred.core.ledger",
        "message": "Credits issued",
        "actor": "0x1234...",
        ...extra fields...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        actor = actor_address_var.get()
        if actor:
            log_data["actor"] = actor

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = ""
        actor = actor_address_var.get()
        if actor:
            prefix = f"[{actor[:10]}] "

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        msg = f"{timestamp} {record.levelname:8} {prefix}{record.name}: {record.getMessage()}"

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_FIELDS and not key.startswith("_")
        }
        if extras:
            msg += " " + " ".join(f"{k}={v}" for k, v in extras.items())

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that moves keyword fields into `extra`.

    Usage:
        logger = get_logger(__name__)
        logger.info("Credit retired", token_id=7, block_number=18000009)
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(kwargs.get("extra") or {})

        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra[key] = kwargs.pop(key)

        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a structured logger for the given name.

    Args:
        name: Logger name (typically __name__)
    """
    return ContextLogger(logging.getLogger(name), {})


def setup_logging() -> None:
    """
    Configure logging for the application.

    Call this once at startup (the management CLI does).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(_get_log_level())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(_get_log_level())

    if _use_json_logging():
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)


@contextmanager
def acting_as(address: Optional[str]) -> Iterator[None]:
    """Attach the acting address to every log line emitted inside the block."""
    token = actor_address_var.set(address or "")
    try:
        yield
    finally:
        actor_address_var.reset(token)


# ============================================================
# METRICS
# ============================================================

@dataclass
class MetricsCollector:
    """
    Simple in-memory metrics collector.

    One collector per LedgerContext; nothing global.
    """

    # Counters
    issued: int = 0
    transferred: int = 0
    retired: int = 0
    tokens_minted: int = 0
    rejections: Dict[str, int] = field(default_factory=dict)
    resets: int = 0
    snapshot_fallbacks: int = 0

    # Histograms (simplified as lists)
    confirmation_latencies_ms: list = field(default_factory=list)

    def record_mutation(self, tx_type: str, minted: int = 0) -> None:
        if tx_type == "issue":
            self.issued += 1
            self.tokens_minted += minted
        elif tx_type == "transfer":
            self.transferred += 1
        elif tx_type == "retire":
            self.retired += 1

    def record_rejection(self, error: Exception) -> None:
        name = type(error).__name__
        self.rejections[name] = self.rejections.get(name, 0) + 1

    def record_confirmation(self, latency_ms: float) -> None:
        self.confirmation_latencies_ms.append(latency_ms)
        # Keep only last 1000 samples
        if len(self.confirmation_latencies_ms) > 1000:
            self.confirmation_latencies_ms = self.confirmation_latencies_ms[-1000:]

    def get_summary(self) -> Dict[str, Any]:
        def percentile(data: list, p: float) -> Optional[float]:
            if not data:
                return None
            sorted_data = sorted(data)
            idx = int(len(sorted_data) * p)
            return sorted_data[min(idx, len(sorted_data) - 1)]

        return {
            "issued": self.issued,
            "transferred": self.transferred,
            "retired": self.retired,
            "tokens_minted": self.tokens_minted,
            "rejections": dict(self.rejections),
            "resets": self.resets,
            "snapshot_fallbacks": self.snapshot_fallbacks,
            "confirmation_latency_p50_ms": percentile(self.confirmation_latencies_ms, 0.5),
            "confirmation_latency_p95_ms": percentile(self.confirmation_latencies_ms, 0.95),
        }


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    """Health check result."""
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


def check_health(ledger=None, store=None) -> HealthStatus:
    """
    Run all health checks.

    Args:
        ledger: LedgerService instance
        store: SnapshotStore instance
    """
    start = time.perf_counter()
    checks = {}
    all_healthy = True

    checks["liveness"] = {"status": "healthy"}

    if store is not None:
        result = store.load()
        checks["snapshot_store"] = {
            "status": "healthy" if result.status.value != "corrupted" else "unhealthy",
            "store": store.description,
            "snapshot": result.status.value,
        }
        if result.error:
            checks["snapshot_store"]["error"] = result.error
            all_healthy = False

    if ledger is not None:
        is_valid = ledger.log.verify_chain()
        checks["transaction_chain"] = {
            "status": "healthy" if is_valid else "unhealthy",
            "valid": is_valid,
            "transactions": len(ledger.log),
        }
        if not is_valid:
            all_healthy = False

        problems = ledger.state.check_invariants()
        checks["state_invariants"] = {
            "status": "healthy" if not problems else "unhealthy",
            "tokens": len(ledger.state.tokens),
        }
        if problems:
            checks["state_invariants"]["problems"] = problems
            all_healthy = False

    duration_ms = (time.perf_counter() - start) * 1000

    return HealthStatus(
        healthy=all_healthy,
        checks=checks,
        duration_ms=round(duration_ms, 2),
    )
