"""
Structured logging for the Campus Access Layer.

Every service logs JSON lines through structlog on top of the stdlib
logging sink. Request and user correlation (request id, uid, role) lives in
context variables so any logger in the call path picks it up without it
being passed around.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_user_id: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
_role: ContextVar[Optional[str]] = ContextVar("role", default=None)

_CORRELATION = {"request_id": _request_id, "user_id": _user_id, "role": _role}

_service_name: Optional[str] = None


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service."""
    global _service_name
    _service_name = service_name

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_service_name,
            add_correlation,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def add_service_name(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    if _service_name:
        event_dict.setdefault("service", _service_name)
    return event_dict


def add_correlation(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Merge the current request/user correlation into the event."""
    for key, var in _CORRELATION.items():
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind the request id, generating one when the caller sent none."""
    request_id = request_id or uuid.uuid4().hex
    _request_id.set(request_id)
    return request_id


def set_user_context(user_id: Optional[str] = None, role: Optional[str] = None) -> None:
    """Bind the uid and resolved role once they are known."""
    if user_id:
        _user_id.set(user_id)
    if role:
        _role.set(role)


def clear_context() -> None:
    for var in _CORRELATION.values():
        var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
