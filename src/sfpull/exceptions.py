from __future__ import annotations

from typing import List, Optional


class SalesforceError(RuntimeError):
    """Base class for every failure raised by sfpull."""


class ConfigurationError(SalesforceError):
    """Raised for invalid settings, before any network call is made."""


class MissingCredentialsError(ConfigurationError):
    """Raised when the required Salesforce settings are not present."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__("Missing required settings: " + ", ".join(missing))


class SalesforceFault(SalesforceError):
    """A typed fault returned by the remote service."""

    def __init__(self, code: str, message: str = "", status: Optional[int] = None):
        self.code = code
        self.message = message
        self.status = status
        super().__init__(f"{code}: {message}" if message else code)


class AuthError(SalesforceError):
    """Invalid credentials or access restricted."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Invalid username or password, or access restricted ({code})")


class SalesforceConnectionError(SalesforceError):
    """Login or transport failure, or use of a closed session."""


class SchemaError(SalesforceError):
    def __init__(self, object_name: str, message: str):
        self.object_name = object_name
        super().__init__(message)


class ObjectNotQueryable(SchemaError):
    def __init__(self, object_name: str):
        super().__init__(object_name, f"Object {object_name!r} is not queryable")


class ObjectNotReplicable(SchemaError):
    def __init__(self, object_name: str):
        super().__init__(object_name, f"Object {object_name!r} is not replicable")


class QueryError(SalesforceError):
    """query / queryMore / getUpdated / getDeleted / retrieve failed."""


class NotDoneError(QueryError):
    """Raised when advancing a result set that is already done."""


class WriteError(SalesforceError):
    """insert / update / upsert / delete failed."""


class CloseError(SalesforceError):
    """Failure while releasing the session."""
