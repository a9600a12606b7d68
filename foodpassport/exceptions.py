"""
Exception hierarchy for the food passport stamp engine
Provides rich context and consistent logging for store and matcher failures
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

import httpx
import psycopg

logger = logging.getLogger(__name__)


class FoodPassportError(Exception):
    """
    Base exception for all stamp engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - Structured context
    - Automatic logging

    Example:
        raise FoodPassportError(
            message="Failed to save stamp",
            user_id="user-1",
            operation="create_user_achievement",
            context={"achievement_id": "first_bite"}
        )
    """

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.error(f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.error(f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Store Errors
# ==========================================

class StoreError(FoodPassportError):
    """A read or write against a meal, aggregate, achievement or challenge store failed"""

    def __init__(
        self,
        message: str,
        store: Optional[str] = None,
        **kwargs
    ):
        self.store = store
        context = kwargs.pop("context", None) or {}
        context.setdefault("store", store)
        super().__init__(message=message, context=context, **kwargs)


class AggregateConflictError(StoreError):
    """Compare-and-swap on a user aggregate kept losing to concurrent writers"""

    def __init__(self, message: str, attempts: int = 0, **kwargs):
        self.attempts = attempts
        super().__init__(
            message=message,
            store="aggregate",
            context={"attempts": attempts},
            **kwargs
        )


# ==========================================
# External Matcher Errors
# ==========================================

class ChallengeMatcherError(FoodPassportError):
    """The external fuzzy dish matcher failed or returned garbage"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        **kwargs
    ):
        self.status_code = status_code
        super().__init__(
            message=message,
            context={"status_code": status_code},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(FoodPassportError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_store_exception(
    error: Exception,
    operation: str,
    store: str,
    user_id: Optional[str] = None
) -> FoodPassportError:
    """
    Wrap database driver exceptions into our exception hierarchy

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_store_exception(e, "create_user_achievement", "achievement", user_id)
    """
    if isinstance(error, FoodPassportError):
        return error

    if isinstance(error, psycopg.OperationalError):
        return StoreError(
            message=f"Database connection failed during {operation}: {error}",
            store=store,
            user_id=user_id,
            operation=operation,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return StoreError(
            message=f"Database query failed during {operation}: {error}",
            store=store,
            user_id=user_id,
            operation=operation,
            cause=error
        )

    return StoreError(
        message=f"{operation} failed: {error}",
        store=store,
        user_id=user_id,
        operation=operation,
        cause=error
    )


def wrap_matcher_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None
) -> FoodPassportError:
    """
    Wrap HTTP client exceptions from the challenge matcher service

    Example:
        try:
            response = await client.post(url, data=form)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise wrap_matcher_exception(e, "check_challenge_completion")
    """
    if isinstance(error, FoodPassportError):
        return error

    if isinstance(error, httpx.TimeoutException):
        return ChallengeMatcherError(
            message=f"Matcher request timed out: {error}",
            user_id=user_id,
            operation=operation,
            cause=error
        )
    elif isinstance(error, httpx.HTTPStatusError):
        return ChallengeMatcherError(
            message=f"Matcher returned error: {error.response.status_code}",
            status_code=error.response.status_code,
            user_id=user_id,
            operation=operation,
            cause=error
        )

    return ChallengeMatcherError(
        message=f"Matcher request failed: {error}",
        user_id=user_id,
        operation=operation,
        cause=error
    )
