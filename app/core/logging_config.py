"""
Logging configuration and context-aware log helpers.
"""
import logging
import logging.handlers
from enum import Enum
from pathlib import Path


class LogCategory(str, Enum):
    """Enumeration for standardized log categories."""
    APP = "app"
    REQUEST = "app.request"
    USER_ACTIONS = "app.user_actions"
    ERRORS = "app.errors"
    DB = "app.db"
    SECURITY = "app.security"
    INTEGRATIONS = "app.integrations"
    JOBS = "app.jobs"


DEFAULT_LOG_LEVEL = logging.INFO

# Fields that should be masked in logs
SENSITIVE_FIELDS = {
    'password',
    'token',
    'accesstoken',
    'refreshtoken',
    'access_token',
    'refresh_token',
    'authorization',
    'secret',
    'api_key',
    'apikey',
    'client_secret',
    'database_url',
    'databaseurl',
    'postgres_password',
    'redis_url',
    'celery_broker_url',
    'image_base64',
    'oauth_code',
    'oauth_state',
}


def _sanitize_data(data):
    """
    Sanitize data to mask sensitive fields.

    Recursively processes dictionaries, lists, and strings to mask sensitive information.
    For URLs, attempts to mask credentials in connection strings.
    """
    if data is None:
        return data

    if isinstance(data, dict):
        sanitized = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
                sanitized[key] = '***MASKED***'
            else:
                sanitized[key] = _sanitize_data(value)
        return sanitized

    if isinstance(data, list):
        return [_sanitize_data(item) for item in data]

    if isinstance(data, str):
        if '@' in data and '://' in data:
            try:
                scheme_part, rest = data.split('://', 1)
                if '@' in rest:
                    user_pass, host_part = rest.rsplit('@', 1)
                    if ':' in user_pass:
                        user, _ = user_pass.split(':', 1)
                        return f"{scheme_part}://{user}:***@{host_part}"
                    return f"{scheme_part}://{user_pass}@{host_part}"
            except (ValueError, IndexError):
                pass

        # Very long opaque strings are most likely tokens
        if len(data) > 64 and all(c.isalnum() or c in '-_' for c in data):
            return '***MASKED***'

        return data

    return data


def _resolve_log_level(level_value, default=DEFAULT_LOG_LEVEL):
    """Resolve string/integer log level inputs to a logging level."""
    if isinstance(level_value, str):
        candidate = level_value.strip()
        if not candidate:
            return default, True
        if candidate.isdigit():
            level_value = int(candidate)
        else:
            candidate = candidate.upper()
            try:
                return logging._checkLevel(candidate), False
            except (ValueError, TypeError):
                return default, True
    try:
        return logging._checkLevel(level_value), False
    except (ValueError, TypeError):
        return default, True


def _get_settings():
    """Lazy import to avoid circular dependency with config module."""
    from app.core.config import settings
    return settings


def setup_logging():
    """Setup logging configuration."""
    settings = _get_settings()

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    resolved_level, used_default_level = _resolve_log_level(settings.log_level)

    from app.middleware.request_logging import RequestContextFilter

    formatter = logging.Formatter(
        "%(asctime)s - [%(request_id)s] %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Console handler (for Docker)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(resolved_level)
    console_handler.addFilter(RequestContextFilter())

    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / "app.log",
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(resolved_level)
    file_handler.addFilter(RequestContextFilter())

    root_logger.setLevel(resolved_level)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    logging.getLogger(LogCategory.APP).setLevel(resolved_level)
    logging.getLogger(LogCategory.DB).setLevel(logging.INFO)
    logging.getLogger(LogCategory.SECURITY).setLevel(logging.INFO)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("fastapi").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    if used_default_level:
        logger.warning(
            "Invalid log level '%s' in configuration, falling back to INFO",
            settings.log_level
        )
    logger.info(
        "Logging configured - Level: %s",
        logging.getLevelName(resolved_level)
    )
    logger.info(f"File logging: {log_dir / 'app.log'}")


def _log_with_context(logger: logging.Logger, level: int, message: str, /, request_id: str = None, exc_info: bool = False, **kwargs):
    """Internal helper to format logs with an optional request ID and extra context.

    Args:
        logger: Logger instance to use
        level: Logging level
        message: Log message
        request_id: Optional request ID for context
        exc_info: Whether to include exception traceback
        **kwargs: Additional context appended to the message (e.g., integration_id).
                  Sensitive fields are masked.
    """
    log_message = f"[{request_id}] {message}" if request_id else message

    if kwargs:
        sanitized_kwargs = _sanitize_data(kwargs)
        extra_context = ", ".join(f"{k}={v}" for k, v in sanitized_kwargs.items())
        log_message = f"{log_message} ({extra_context})"

    logger.log(level, log_message, exc_info=exc_info)


def log_user_action(user_email: str, action: str, request_id: str = None, **kwargs):
    """Log user actions with request ID."""
    logger = logging.getLogger(LogCategory.USER_ACTIONS)
    message = f"User {user_email} {action}"
    _log_with_context(logger, logging.INFO, message, request_id, **kwargs)


def log_info(message: str, request_id: str = None, **kwargs):
    """Log info messages with request ID."""
    logger = logging.getLogger(LogCategory.APP)
    _log_with_context(logger, logging.INFO, message, request_id, **kwargs)


def log_debug(message: str, request_id: str = None, **kwargs):
    """Log debug messages with request ID."""
    logger = logging.getLogger(LogCategory.APP)
    _log_with_context(logger, logging.DEBUG, message, request_id, **kwargs)


def log_warning(message: str, request_id: str = None, **kwargs):
    """Log warning messages with request ID."""
    logger = logging.getLogger(LogCategory.APP)
    _log_with_context(logger, logging.WARNING, message, request_id, **kwargs)


def log_error(error: Exception | str, request_id: str = None, user_email: str = None, **kwargs):
    """Log errors with request ID.

    Args:
        error: Exception object or error message string
        request_id: Optional request ID for context
        user_email: Optional user email for context
        **kwargs: Additional context (e.g., screenshot_id, integration_id)
    """
    logger = logging.getLogger(LogCategory.ERRORS)
    user_info = f" (user: {user_email})" if user_email else ""
    message = f"Error: {str(error)}{user_info}"
    # exc_info only when there is an actual exception
    exc_info = isinstance(error, Exception)
    _log_with_context(logger, logging.ERROR, message, request_id, exc_info=exc_info, **kwargs)
