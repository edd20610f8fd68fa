"""Error taxonomy shared by the routers, services and data access layer.

Every error carries the HTTP status it maps to; the handlers registered in
``orgpulse.main`` turn them into ``{"error": message}`` envelopes.
"""


class OrgPulseError(Exception):
    """Base error for orgpulse."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"error": self.message}


class ClientError(OrgPulseError):
    """Missing or invalid request parameter."""

    status_code = 400


class AuthenticationError(OrgPulseError):
    """Missing or invalid credentials for the caller or the stored connection."""

    status_code = 401


class ConnectionNotFoundError(OrgPulseError):
    """The caller has no stored customer-database connection."""

    status_code = 404


class ProviderNotConfiguredError(OrgPulseError):
    """The payments provider API key is not configured."""

    status_code = 400

    def to_payload(self) -> dict:
        return {"success": False, "error": self.message}


class DataFetchError(OrgPulseError):
    """A single query against the customer database or provider failed."""

    status_code = 502


class BillingSyncError(OrgPulseError):
    """Pulling the snapshot from the payments provider failed."""

    def to_payload(self) -> dict:
        return {"success": False, "error": self.message}
