"""Logging setup and structured logging for upstream calls."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a stream handler on the root logger (no-op if one exists)."""
    logging.basicConfig(level=level.upper(), format=_LOG_FORMAT)


class StructuredUpstreamLogger:
    """Structured logger for embedding and generation calls."""

    def log_call(
        self,
        service: str,
        operation: str,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log one upstream call with structured data."""
        log_data: dict[str, Any] = {
            "service": service,
            "operation": operation,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Upstream call: {service}.{operation} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
