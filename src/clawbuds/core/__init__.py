"""ClawBuds Core - shared primitives (config, errors, events, logging)."""

from .config import ClawbudsConfig, clear_config_cache, get_config
from .events import EventBus
from .exceptions import (
    AuthenticationFailure,
    ClawbudsException,
    ConfigException,
    ConflictError,
    NotFoundError,
    SigningError,
    ValidationException,
)
from .logging import configure_logging, get_logger

__all__ = [
    # Config
    "ClawbudsConfig",
    "get_config",
    "clear_config_cache",
    # Events
    "EventBus",
    # Exceptions
    "AuthenticationFailure",
    "ClawbudsException",
    "ConfigException",
    "ConflictError",
    "NotFoundError",
    "SigningError",
    "ValidationException",
    # Logging
    "configure_logging",
    "get_logger",
]
