"""
Custom error classes for Deal Desk.
Structured error handling with error codes across all modules.

Hierarchy:
    DealDeskError
    ├── DataError
    │   ├── ConfigError
    │   ├── SchemaValidationError
    │   ├── DataFetchError
    │   └── StoreLockedError
    ├── DealError
    │   └── DealNotFoundError
    └── ToolError
        ├── UnknownMethodError
        └── InvalidParamsError
"""


class DealDeskError(Exception):
    """Base exception for all Deal Desk errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- Data Errors ---

class DataError(DealDeskError):
    """Base class for data loading and persistence errors."""
    pass


class ConfigError(DataError):
    """Configuration file error."""

    def __init__(self, message: str, config_path: str = None):
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"config_path": config_path},
        )


class SchemaValidationError(DataError):
    """Sheet data doesn't match the expected column schema."""

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message, code="SCHEMA_INVALID", details={"field": field},
        )


class DataFetchError(DataError):
    """Failed to read or write the deal sheet."""

    def __init__(self, message: str, source: str = None):
        super().__init__(
            message, code="DATA_FETCH_FAILED", details={"source": source},
        )


class StoreLockedError(DataError):
    """Another writer holds the sheet lock file."""

    def __init__(self, lock_path: str):
        super().__init__(
            f"Deal sheet is locked: {lock_path}",
            code="STORE_LOCKED", details={"lock_path": lock_path},
        )


# --- Deal Errors ---

class DealError(DealDeskError):
    """Base class for deal operation errors."""
    pass


class DealNotFoundError(DealError):
    """No deal with the requested id."""

    def __init__(self, deal_id: str):
        self.deal_id = deal_id
        super().__init__(
            f"Deal not found: {deal_id}",
            code="NOT_FOUND", details={"deal_id": deal_id},
        )



# --- Tool Errors ---

class ToolError(DealDeskError):
    """Base class for tool dispatch errors."""

    def __init__(self, message: str, code: str = "TOOL_ERROR", **kwargs):
        super().__init__(message, code=code, details=kwargs)


class UnknownMethodError(ToolError):
    """Requested method or tool name is not registered."""

    def __init__(self, method: str):
        super().__init__(
            f"Method not found: {method}", code="METHOD_NOT_FOUND", method=method,
        )


class InvalidParamsError(ToolError):
    """Tool arguments are missing or malformed."""

    def __init__(self, message: str, param: str = None):
        super().__init__(message, code="INVALID_PARAMS", param=param)
