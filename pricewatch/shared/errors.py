"""Error types shared by all price tracking components."""
from typing import Optional


class PriceWatchError(Exception):
    """Base class for every error raised by this package."""
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "", details: Optional[dict] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message
        self.details = details or {}


class ValidationError(PriceWatchError):
    """Bad caller input. Never retried."""
    code = "VALIDATION_ERROR"


# ============================================
# Provider errors
# ============================================

class ProviderError(PriceWatchError):
    """A price source failed; wraps the underlying cause when there is one."""
    code = "PROVIDER_ERROR"

    def __init__(self, provider: str, message: str = "", cause: Optional[BaseException] = None):
        self.provider = provider
        self.cause = cause
        if not message and cause is not None:
            message = str(cause) or cause.__class__.__name__
        super().__init__(f"{provider}: {message}" if message else provider, {"provider": provider})


class RateLimitedError(ProviderError):
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, provider: str, retry_after: float = 60.0):
        self.retry_after = retry_after
        super().__init__(provider, f"rate limited, retry after {retry_after:g}s")


class ProviderTimeoutError(ProviderError):
    code = "TIMEOUT_ERROR"

    def __init__(self, provider: str, timeout: Optional[float] = None):
        self.timeout = timeout
        message = f"request timed out after {timeout:g}s" if timeout else "request timed out"
        super().__init__(provider, message)


class NetworkError(ProviderError):
    code = "NETWORK_ERROR"


class ProviderAuthError(ProviderError):
    code = "AUTHENTICATION_ERROR"


class ProviderNotFoundError(ProviderError):
    code = "RESOURCE_NOT_FOUND"


class ProviderServerError(ProviderError):
    code = "SERVICE_ERROR"

    def __init__(self, provider: str, status_code: int):
        self.status_code = status_code
        super().__init__(provider, f"server error: {status_code}")


# ============================================
# Persistence & alert lifecycle errors
# ============================================

class PersistenceError(PriceWatchError):
    """Alert store read/write failure."""
    code = "DATABASE_ERROR"


class AlertStateError(PriceWatchError):
    code = "ALERT_STATE_ERROR"


class InvalidTransitionError(AlertStateError):
    code = "INVALID_TRANSITION"

    def __init__(self, alert_id: str, current: str, target: str):
        self.alert_id = alert_id
        self.current = current
        self.target = target
        super().__init__(f"alert {alert_id}: cannot move from {current} to {target}")


class AlertDeletedError(AlertStateError):
    code = "ALERT_DELETED"

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"alert {alert_id} is deleted")
