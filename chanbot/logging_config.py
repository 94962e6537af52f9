"""Logging configuration for chanbot.

Provides subsystem-level log file routing, secret sanitization,
and structlog + stdlib integration.

Subsystem hierarchy (stdlib dotted names, structlog wraps them):
    root              → ConsoleHandler (terminal)
      └─ chanbot      → RotatingFileHandler → chanbot.log (combined)
           ├─ chanbot.bot      → RFH → bot.log
           ├─ chanbot.irc      → RFH → irc.log
           ├─ chanbot.dispatch → RFH → dispatch.log
           └─ chanbot.memo     → RFH → memo.log
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict

import structlog

SUBSYSTEMS = ("bot", "irc", "dispatch", "memo")

LOGGER_PREFIX = "chanbot"

# ---------------------------------------------------------------------------
# Secret sanitization
# ---------------------------------------------------------------------------

_SECRET_PATTERNS = [
    # NickServ identification: "IDENTIFY [account] password"
    re.compile(r"(IDENTIFY\s+)(\S+(?:\s+\S+)?)", re.IGNORECASE),
    # Server password line
    re.compile(r"(PASS\s+)(\S+)"),
    # Channel key on JOIN: "JOIN #chan key"
    re.compile(r"(JOIN\s+[#&]\S+\s+)(\S+)", re.IGNORECASE),
]

_REDACTED = "***REDACTED***"


def _scrub_value(value: str) -> str:
    """Mask credentials in a single string value."""
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(lambda m: m.group(1) + _REDACTED, value)
    return value


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor that scrubs IRC credentials.

    Walks all string values in the event dict, including one level of
    lists and dicts, and replaces passwords with a placeholder.
    """
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = _scrub_value(value)
        elif isinstance(value, (list, tuple)):
            event_dict[key] = type(value)(
                _scrub_value(v) if isinstance(v, str) else v
                for v in value
            )
        elif isinstance(value, dict):
            event_dict[key] = {
                k: _scrub_value(v) if isinstance(v, str) else v
                for k, v in value.items()
            }
    return event_dict


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(config=None) -> None:
    """Configure structured logging with subsystem file handlers.

    Sets up:
    1. Root logger: ConsoleHandler
    2. "chanbot" logger: RotatingFileHandler → logs/chanbot.log
    3. "chanbot.<subsystem>" loggers: individual RotatingFileHandlers

    Args:
        config: Optional Config instance. First call (before config loads)
                uses defaults with cache_logger_on_first_use=False.
                Second call uses real config and caches loggers.
    """
    if config is not None:
        log_dir = config.log_dir
        root_level_name = config.logging_level.upper()
        subsystem_levels = config.logging_subsystem_levels
        max_bytes = config.logging_max_file_size_mb * 1024 * 1024
        backup_count = config.logging_backup_count
        cache_loggers = True
    else:
        log_dir = Path(__file__).parent.parent / "logs"
        root_level_name = "INFO"
        subsystem_levels = {}
        max_bytes = 10 * 1024 * 1024
        backup_count = 5
        cache_loggers = False

    root_level = getattr(logging, root_level_name, logging.INFO)

    file_handlers_ok = False
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handlers_ok = True
    except OSError as exc:
        # Console-only: the bot must not crash on logging failure
        print(
            f"WARNING: Cannot create log directory {log_dir}: {exc}. "
            "Falling back to console-only logging.",
            file=sys.stderr,
        )

    file_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )

    # 1. Root logger: console only
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(root_level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    )
    root_logger.addHandler(console_handler)

    # 2. "chanbot" parent logger: combined log file
    cb_logger = logging.getLogger(LOGGER_PREFIX)
    cb_logger.setLevel(logging.DEBUG)
    cb_logger.handlers.clear()
    cb_logger.propagate = True

    if file_handlers_ok:
        combined_handler = logging.handlers.RotatingFileHandler(
            log_dir / "chanbot.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        combined_handler.setLevel(root_level)
        combined_handler.setFormatter(file_formatter)
        cb_logger.addHandler(combined_handler)

    # 3. Per-subsystem loggers
    for subsystem in SUBSYSTEMS:
        sub_logger = logging.getLogger(f"{LOGGER_PREFIX}.{subsystem}")
        sub_level_name = subsystem_levels.get(subsystem, "").upper()
        sub_level = getattr(logging, sub_level_name, root_level) if sub_level_name else root_level
        sub_logger.setLevel(sub_level)
        sub_logger.handlers.clear()
        sub_logger.propagate = True

        if file_handlers_ok:
            sub_handler = logging.handlers.RotatingFileHandler(
                log_dir / f"{subsystem}.log",
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            sub_handler.setLevel(sub_level)
            sub_handler.setFormatter(file_formatter)
            sub_logger.addHandler(sub_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            sanitize_secrets,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=cache_loggers,
    )
