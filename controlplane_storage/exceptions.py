"""
Custom exceptions for the control-plane document store.

All database client operations raise these exceptions so that callers
can tell "absent" apart from every other failure without inspecting
Cosmos DB response codes.
"""


class DocumentStoreError(Exception):
    """Base exception for all document store errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(DocumentStoreError):
    """Raised when a requested document does not exist.

    Callers commonly treat this as "absent" rather than as a failure,
    e.g. deleting a document that is already gone succeeds.
    """

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} not found: '{key}'", {"kind": kind, "key": key})
        self.kind = kind
        self.key = key


class MarshalError(DocumentStoreError):
    """Raised when a document cannot be serialized for the store."""

    def __init__(self, kind: str, key: str, cause: Exception | None = None):
        details = {"kind": kind, "key": key}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Failed to marshal {kind} item for '{key}'", details)
        self.kind = kind
        self.key = key
        self.cause = cause


class UnmarshalError(DocumentStoreError):
    """Raised when the store returns an item that cannot be decoded."""

    def __init__(self, kind: str, key: str, cause: Exception | None = None):
        details = {"kind": kind, "key": key}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Failed to unmarshal {kind} item for '{key}'", details)
        self.kind = kind
        self.key = key
        self.cause = cause


class StorageIOError(DocumentStoreError):
    """Raised when a storage operation fails for any other reason."""

    def __init__(
        self,
        operation: str,
        kind: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ):
        details = {"operation": operation}
        if kind:
            details["kind"] = kind
        if key:
            details["key"] = key
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if kind:
            message += f" of {kind} item"
        if key:
            message += f" for '{key}'"
        super().__init__(message, details)
        self.operation = operation
        self.kind = kind
        self.key = key
        self.cause = cause


class StorageConnectionError(DocumentStoreError):
    """Raised when the database cannot be reached.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class AuthenticationError(DocumentStoreError):
    """Raised when configuration or credentials for the store are missing or rejected."""

    def __init__(self, endpoint: str, reason: str | None = None):
        details = {"endpoint": endpoint}
        if reason:
            details["reason"] = reason
        super().__init__(f"Authentication failed for {endpoint}", details)
        self.endpoint = endpoint
        self.reason = reason


class ValidationError(DocumentStoreError):
    """Raised when input validation fails (e.g., a malformed resource ID)."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
