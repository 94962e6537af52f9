"""Exception hierarchy for chanbot.

Every error raised by chanbot itself derives from ChanbotError so the
dispatcher can log handler failures with their category and context
instead of letting them escape into the event loop.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for logging and retry decisions."""
    TRANSIENT = "transient"          # May succeed later (locked database, dropped socket)
    PERMANENT = "permanent"          # Bad input, will fail again
    INFRASTRUCTURE = "infrastructure"  # Missing config, environment issues


class ChanbotError(Exception):
    """Base exception for all chanbot errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification.
        module: Originating module name (e.g. "memo.database").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


class ConfigurationError(ChanbotError):
    """Invalid or missing configuration.

    Defaults to INFRASTRUCTURE because config issues won't resolve by
    retrying.
    """

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )


class DatabaseError(ChanbotError):
    """Error during database operations.

    Attributes:
        operation: The DB operation that failed (e.g. "insert", "query").
        table: The table involved (if known).
    """

    def __init__(
        self,
        message: str = "",
        *,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.operation = operation
        self.table = table
        super().__init__(
            message, category=category, module=module or "database", **context
        )


class TransportError(ChanbotError):
    """The IRC connection could not be established or was lost."""

    def __init__(
        self,
        message: str = "",
        *,
        server: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.server = server
        super().__init__(
            message, category=category, module=module or "irc", **context
        )
