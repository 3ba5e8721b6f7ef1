"""Unattended booking job.

Runs one booking batch without the CLI, suitable for a scheduled container
or cron entry (``python -m timebooker.worker.jobs``).  The batch summary is
written to stdout as JSON; progress goes to stderr.

Environment variables:
    TIMEBOOKER_JOB__CATEGORY:  Fallback category for unscheduled weekdays
                               (default: ``booking.default_category``).
    TIMEBOOKER_JOB__DRY_RUN:   Discard instead of save (default: false).
    TIMEBOOKER_LOG_LEVEL:      Root log level (default: INFO).
    TIMEBOOKER_ENV:            ``local`` for plain-text logs, anything else
                               for JSON lines.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time

logger = logging.getLogger(__name__)


def main() -> int:
    """Run a booking batch from environment configuration.

    Returns:
        Exit code: 0 if every item succeeded, 1 otherwise.
    """
    configure_logging()

    category = os.environ.get("TIMEBOOKER_JOB__CATEGORY", "").strip() or None
    dry_run = os.environ.get("TIMEBOOKER_JOB__DRY_RUN", "false").lower() in ("true", "1", "yes")

    start = time.monotonic()
    try:
        from timebooker.booking.runner import run_booking
        from timebooker.settings import get_settings

        settings = get_settings()
        logger.info("Booking job starting: env=%s category=%s dry_run=%s", settings.env, category, dry_run)
        summary = asyncio.run(run_booking(settings, category=category, dry_run=dry_run or None))
    except Exception:
        logger.exception("Booking job failed")
        return 1

    elapsed = time.monotonic() - start
    sys.stdout.write(summary.model_dump_json(indent=2) + "\n")
    if summary.failed:
        logger.error("Booking job finished with %d failed item(s) in %.1fs", summary.failed, elapsed)
        return 1
    logger.info("Booking job completed: %d item(s) in %.1fs", summary.total, elapsed)
    return 0


def configure_logging(level: str | None = None) -> None:
    """Set up root logging.

    Outside ``local`` (``TIMEBOOKER_ENV``), emits JSON lines compatible with
    Cloud Logging severity parsing::

        {"severity": "INFO", "message": "...", "logger": "..."}

    Locally, uses a human-readable plain-text format.
    """
    log_level = (level or os.environ.get("TIMEBOOKER_LOG_LEVEL", "INFO")).upper()
    env = os.environ.get("TIMEBOOKER_ENV", "local").strip()

    if env != "local":
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter())
        logging.root.handlers.clear()
        logging.root.addHandler(handler)
        logging.root.setLevel(getattr(logging, log_level, logging.INFO))
    else:
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
            stream=sys.stderr,
            force=True,
        )

    # Quieten noisy libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    """JSON formatter emitting Cloud Logging-compatible entries."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "severity": record.levelname if record.levelname in _SEVERITIES else "DEFAULT",
            "message": record.getMessage(),
            "logger": record.name,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


_SEVERITIES = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


if __name__ == "__main__":
    sys.exit(main())
