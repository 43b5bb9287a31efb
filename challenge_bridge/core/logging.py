"""
Structured logging configuration for interception sessions

Every controller binds a `component` (e.g. `akamai_handler`, `gate`,
`hyper_oracle`); the file log always carries it, and noisy components can be
given their own threshold without lowering the global level.
"""

import structlog
from pathlib import Path
import logging
import logging.config
import json
from datetime import datetime, timezone
from typing import Dict, Optional

DEFAULT_COMPONENT = "bridge"

# Chatty libraries underneath the oracle client and the browser driver
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "asyncio")


class StructuredFileRenderer:
    """Renders structlog event dicts as one JSON object per line"""

    def __call__(self, logger, method_name, event_dict):
        if "timestamp" not in event_dict:
            event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

        event_dict.setdefault("level", method_name)
        event_dict.setdefault("component", DEFAULT_COMPONENT)

        return json.dumps(event_dict, default=str)


class ComponentLevelFilter:
    """Drops events below the threshold configured for their component"""

    def __init__(self, levels: Optional[Dict[str, str]] = None):
        self.levels = {
            component: logging.getLevelName(level.upper())
            for component, level in (levels or {}).items()
        }

    def __call__(self, logger, method_name, event_dict):
        threshold = self.levels.get(event_dict.get("component"))
        if threshold is None:
            return event_dict

        level = logging.getLevelName(method_name.upper())
        if isinstance(level, int) and level < threshold:
            raise structlog.DropEvent
        return event_dict


def parse_component_levels(values) -> Dict[str, str]:
    """Turn `component=LEVEL` strings from the command line into a mapping"""
    levels = {}
    for value in values or ():
        component, sep, level = value.partition("=")
        if not sep or not component or not level:
            raise ValueError(f"Expected COMPONENT=LEVEL, got {value!r}")
        if not isinstance(logging.getLevelName(level.upper()), int):
            raise ValueError(f"Unknown log level: {level}")
        levels[component.strip()] = level.strip().upper()
    return levels


def configure_logging(
    log_level: str = "INFO",
    log_dir: str = "logs",
    json_logs: bool = False,
    component_levels: Optional[Dict[str, str]] = None
):
    """Configure stdlib handlers and structlog processors for the bridge"""

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    # Applied to records from plain stdlib loggers (httpx, playwright) as well
    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    console_renderer = StructuredFileRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=True)

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    console_renderer,
                ],
                "foreign_pre_chain": shared_processors,
            },
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    StructuredFileRenderer(),
                ],
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "console",
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": log_level,
                "formatter": "json",
                "filename": str(log_path / "bridge.log"),
                "maxBytes": 10485760,  # 10MB
                "backupCount": 5,
            },
            "error_file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "ERROR",
                "formatter": "json",
                "filename": str(log_path / "errors.log"),
                "maxBytes": 10485760,  # 10MB
                "backupCount": 5,
            }
        },
        "loggers": {
            "": {
                "handlers": ["console", "file", "error_file"],
                "level": log_level,
            },
            **{name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        }
    })

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            ComponentLevelFilter(component_levels),
            *shared_processors,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
