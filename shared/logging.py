"""
Structured logging for the access token layer.

Every event carries the service name (taken from the logger name prefix) and,
when set for the current context, the correlation fields below:

- ``request_id``: the inbound HTTP request
- ``user_id`` / ``account_id``: the verified token's subject and account
- ``masquerading_user_id``: the real user behind a masqueraded session
- ``token_jti`` / ``token_issuer``: which token authenticated the request

Raw token strings are never logged; ``drop_token_strings`` strips them from
events that pass one by mistake.
"""

import sys
import structlog
import logging
import uuid
import time
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Context variables for correlation IDs
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)
account_id_var: ContextVar[Optional[str]] = ContextVar('account_id', default=None)
masquerading_user_id_var: ContextVar[Optional[str]] = ContextVar('masquerading_user_id', default=None)
token_jti_var: ContextVar[Optional[str]] = ContextVar('token_jti', default=None)
token_issuer_var: ContextVar[Optional[str]] = ContextVar('token_issuer', default=None)

_CORRELATION_FIELDS = (
    ("request_id", request_id_var),
    ("user_id", user_id_var),
    ("account_id", account_id_var),
    ("masquerading_user_id", masquerading_user_id_var),
    ("token_jti", token_jti_var),
    ("token_issuer", token_issuer_var),
)

# Event keys that may hold a bearer credential
_TOKEN_KEYS = frozenset({"token", "token_string", "authorization"})


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service."""

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
            drop_token_strings,
            add_service_context,
            add_correlation_context,
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def drop_token_strings(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Replace bearer credentials with a marker."""
    for key in _TOKEN_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to log events."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["service"] = logger_name.split(".")[0]

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add correlation context to log events."""
    for field, var in _CORRELATION_FIELDS:
        value = var.get()
        if value:
            event_dict.setdefault(field, value)

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["timestamp"] = time.time()
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_token_context(
    user_id: Optional[str] = None,
    account_id: Optional[str] = None,
    masquerading_user_id: Optional[str] = None,
    jti: Optional[str] = None,
    issuer: Optional[str] = None,
) -> None:
    """Bind the identity a verified token established to the current context."""
    user_id_var.set(user_id or None)
    account_id_var.set(account_id or None)
    masquerading_user_id_var.set(masquerading_user_id or None)
    token_jti_var.set(jti or None)
    token_issuer_var.set(issuer or None)


def clear_context():
    """Clear all context variables."""
    for _, var in _CORRELATION_FIELDS:
        var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
