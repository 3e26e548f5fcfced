"""
Custom exceptions for MDB_REPOSITORY.

Not-found conditions are never raised: lookups return ``None`` and removals
return ``False``. Everything here is either a caller mistake detected before
any network call, or a failure reported by the store.
"""

from typing import Any, Dict, List, Optional


class RepositoryError(RuntimeError):
    """
    Base exception for repository errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (database,
                 collection, entity_type, etc.)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class ConfigurationError(RepositoryError):
    """
    Raised when configuration is invalid or missing.

    Repository construction fails with this error; the repository must not
    be used afterwards.

    Attributes:
        message: Error message
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value


class IdentityResolutionError(ConfigurationError):
    """
    Raised when an entity type has no usable identity field.

    Attributes:
        entity_type: Name of the entity type being resolved
        field_name: Offending field (if a specific field was rejected)
    """

    def __init__(
        self,
        message: str,
        entity_type: Optional[str] = None,
        field_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if entity_type:
            context["entity_type"] = entity_type
        if field_name:
            context["field"] = field_name
        super().__init__(message, context=context)
        self.entity_type = entity_type
        self.field_name = field_name


class QueryTranslationError(RepositoryError):
    """
    Raised when a predicate or query shape cannot be translated for the store.

    Always raised while the query is being built, before any network call.

    Attributes:
        message: Error message
        fields: Field names involved (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        fields: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if fields:
            context["fields"] = fields
        super().__init__(message, context=context)
        self.fields = fields or []


class StoreError(RepositoryError):
    """
    Raised when the document store reports a failure.

    Attributes:
        operation: Store operation that failed (e.g. "upsert_document")
        code: Store error code (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if operation:
            context["operation"] = operation
        if code is not None:
            context["code"] = code
        super().__init__(message, context=context)
        self.operation = operation
        self.code = code


class StoreTransientError(StoreError):
    """
    A store failure that may succeed if retried (timeouts, failover, throttling).
    """


class StoreFatalError(StoreError):
    """
    A store failure that will not succeed on retry (malformed request,
    permission denial, duplicate key).
    """


class ResourceExistsError(StoreFatalError):
    """
    Raised when creating a database or collection whose name is already taken.
    """
