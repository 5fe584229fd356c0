"""
Structured logging for the relay agent.

structlog sits on top of stdlib logging so aiohttp and asyncio records pass
through the same formatter. Every event carries the service name, the
emitting component and, inside a session, the call SID as correlation id.
Credentials that reach an event (tool arguments, client settings, request
headers) are redacted before rendering.

Environment:
  LOG_LEVEL   debug|info|warning|error|critical, overrides the argument
  LOG_FORMAT  json (default) or console
  LOG_COLOR   0 disables colors in console format
"""

import contextvars
import logging
import os
import sys
import uuid

import structlog
from structlog import dev as structlog_dev

REDACTED = "***REDACTED***"

# Call SID of the session whose task is running
correlation_id_var = contextvars.ContextVar('correlation_id', default=None)

SENSITIVE_KEYS = (
    'api_key', 'apikey', 'token', 'access_token', 'auth_token', 'bearer',
    'password', 'passwd', 'pwd', 'pass', 'authorization', 'auth',
    'credential', 'credentials', 'secret', 'client_secret', 'private_key',
)
_SENSITIVE_SUFFIXES = tuple({k.replace('_', '') for k in SENSITIVE_KEYS})

QUIET_LOGGERS = ('aiohttp', 'aiohttp.access', 'aiohttp.web', 'asyncio')


def get_correlation_id():
    return correlation_id_var.get()


def set_correlation_id(value=None):
    """Bind a correlation id to the current task; a uuid is generated when none is given."""
    value = value or str(uuid.uuid4())
    correlation_id_var.set(value)
    return value


def add_correlation_id(logger, method_name, event_dict):
    correlation_id = correlation_id_var.get()
    if correlation_id:
        event_dict['correlation_id'] = correlation_id
    return event_dict


def _service_context(service_name):
    def add_service_context(logger, method_name, event_dict):
        event_dict['service'] = service_name
        if 'component' not in event_dict:
            event_dict['component'] = event_dict.get('logger') or getattr(logger, 'name', 'unknown')
        return event_dict
    return add_service_context


def _is_sensitive(key) -> bool:
    # "servicenow_password" matches, "passthrough_fields" does not
    normalized = str(key).lower().replace('_', '').replace('-', '')
    return normalized.endswith(_SENSITIVE_SUFFIXES)


def _mask(value):
    if value is None or value == '' or isinstance(value, bool):
        return value
    if isinstance(value, str) and len(value) > 4:
        # keep a prefix such as "sk" or "AC" to tell credentials apart
        return value[:2] + REDACTED
    if isinstance(value, (list, tuple)):
        return [_mask(v) for v in value]
    return REDACTED


def _scrub(value):
    if isinstance(value, dict):
        return {k: _mask(v) if _is_sensitive(k) else _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


def sanitize_secrets(logger, method_name, event_dict):
    """structlog processor replacing credential values with '***REDACTED***'."""
    return _scrub(event_dict)


def _drop_tracebacks(logger, method_name, event_dict):
    event_dict.pop('exc_info', None)
    return event_dict


def configure_logging(log_level="INFO", service_name="relay-agent"):
    level_name = str(os.getenv("LOG_LEVEL") or log_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = os.getenv("LOG_FORMAT", "json").strip().lower()
    colors = os.getenv("LOG_COLOR", "1").strip().lower() not in ("0", "false")

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _service_context(service_name),
        add_correlation_id,
        sanitize_secrets,
    ]
    # Stack traces only at debug level
    if level != logging.DEBUG:
        processors.append(_drop_tracebacks)
    processors += [
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if log_format == "console":
        renderer = structlog_dev.ConsoleRenderer(colors=colors)
    else:
        renderer = structlog.processors.JSONRenderer()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            sanitize_secrets,
        ],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "Logging configured", service_name=service_name, level=level_name, format=log_format,
    )


def get_logger(name: str):
    return structlog.get_logger(name)
