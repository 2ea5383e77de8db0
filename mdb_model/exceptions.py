"""
Custom exceptions for MDB_MODEL.

Every error raised by the model layer derives from ModelError, which keeps
backward compatibility with RuntimeError and carries a context dictionary
(model name, collection name, operation, ...) for diagnostics.
"""

from typing import Any, Dict, Optional


class ModelError(RuntimeError):
    """
    Base exception for model layer errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (model_name,
                 collection_name, operation, etc.)
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


class ConfigurationError(ModelError):
    """
    Raised when a model declaration or runtime configuration is invalid.

    Detected at registration time (class creation or definition parsing),
    before any query runs and without any I/O.

    Attributes:
        message: Error message
        model_name: Name of the model being registered (if available)
        field_name: Field that caused the error (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        model_name: Optional[str] = None,
        field_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if model_name:
            context["model_name"] = model_name
        if field_name:
            context["field_name"] = field_name
        super().__init__(message, context=context)
        self.model_name = model_name
        self.field_name = field_name


class IndexSyncError(ModelError):
    """
    Raised when one or more declared indexes could not be created.

    The synchronizer attempts every missing index before raising, so
    `failures` lists each index that failed together with its error.

    Attributes:
        message: Error message
        collection_name: Collection being synchronized
        failures: Mapping of index name -> error description
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        collection_name: Optional[str] = None,
        failures: Optional[Dict[str, str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if collection_name:
            context["collection_name"] = collection_name
        if failures:
            context["failed_indexes"] = sorted(failures)
        super().__init__(message, context=context)
        self.collection_name = collection_name
        self.failures = failures or {}


class UsageError(ModelError):
    """
    Raised when an unsafe builder operation is attempted.

    For example `update()` without a filter, or `delete()` without a filter
    and without an explicit `all()`. Raised before any driver call.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if operation:
            context["operation"] = operation
        super().__init__(message, context=context)
        self.operation = operation


class QueryExecutionError(ModelError):
    """
    Raised when the driver reports a failure for a model operation.

    The original driver exception is always chained as __cause__.

    Attributes:
        message: Error message
        operation: Model operation that failed (create, update, ...)
        collection_name: Collection the operation targeted
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        collection_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if operation:
            context["operation"] = operation
        if collection_name:
            context["collection_name"] = collection_name
        super().__init__(message, context=context)
        self.operation = operation
        self.collection_name = collection_name
