"""Logging configuration for the StableLink backend.

All loggers live under the ``stablelink`` namespace. Verification
decisions are additionally written to ``stablelink.audit`` so every
accept/reject verdict leaves a single greppable line.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

LOGGER_NAME = "stablelink"
AUDIT_LOGGER_NAME = "stablelink.audit"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a logger, namespacing it under ``stablelink`` if needed."""
    if name != LOGGER_NAME and not name.startswith(f"{LOGGER_NAME}."):
        name = f"{LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def setup_logging(level: str = "INFO", log_dir: str | Path | None = None) -> logging.Logger:
    """Configure the ``stablelink`` logger.

    Safe to call more than once: handlers are only attached the first time.

    Args:
        level: Log level name (case-insensitive). Unknown names fall back to INFO.
        log_dir: When set, also write to ``server-YYYY-MM-DD.log`` in this directory.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(LOGGER_NAME)

    resolved = getattr(logging, str(level).upper(), None)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)

    formatter = logging.Formatter(LOG_FORMAT)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if not has_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)

    if log_dir is not None:
        has_file = any(isinstance(h, logging.FileHandler) for h in logger.handlers)
        if not has_file:
            path = Path(log_dir)
            path.mkdir(parents=True, exist_ok=True)
            date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
            file_handler = logging.FileHandler(path / f"server-{date_str}.log")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def log_verification_event(
    tx_hash: str,
    verdict: str,
    reason: str | None = None,
    **details,
) -> None:
    """Write one audit line for a verification decision.

    Args:
        tx_hash: Transaction hash that was checked.
        verdict: ``valid``, ``rejected`` or ``inconclusive``.
        reason: Failure kind or error class, if any.
        **details: Extra key=value pairs (payment id, amounts, confirmations).
    """
    parts = [f"verification | tx={tx_hash} | verdict={verdict}"]
    if reason:
        parts.append(f"reason={reason}")
    for key, value in details.items():
        if value is not None:
            parts.append(f"{key}={value}")

    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    if verdict == "valid":
        audit.info(" | ".join(parts))
    elif verdict == "inconclusive":
        audit.error(" | ".join(parts))
    else:
        audit.warning(" | ".join(parts))
