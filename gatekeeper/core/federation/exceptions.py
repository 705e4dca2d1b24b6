"""Federation-specific exceptions for error handling."""
from typing import Optional


class FederationError(Exception):
    """Base exception for all federation operations."""
    pass


class UnknownRegistration(FederationError):
    """No provider is registered under the requested registration id."""

    def __init__(self, registration_id: str):
        self.registration_id = registration_id
        super().__init__(f"Unknown client registration: {registration_id}")


class ProviderError(FederationError):
    """A provider call failed.

    Attributes:
        provider_error_code: Vendor error code (errcode, error, code) or a
            local code such as ``transport_error`` / ``http_502``
        provider_error_message: Vendor error message, when one was returned
        registration_id: Registration the call was made for
    """

    def __init__(
        self,
        message: str,
        provider_error_code: Optional[str] = None,
        provider_error_message: Optional[str] = None,
        registration_id: Optional[str] = None,
    ):
        self.message = message
        self.provider_error_code = provider_error_code
        self.provider_error_message = provider_error_message
        self.registration_id = registration_id
        super().__init__(message if not provider_error_code else f"[{provider_error_code}] {message}")


class TokenExchangeFailed(ProviderError):
    """Authorization code could not be exchanged for an access token."""
    pass


class UserInfoFetchFailed(ProviderError):
    """User attributes could not be retrieved or lack the subject attribute."""
    pass


class AuthorizationFailed(ProviderError):
    """Callback rejected: state mismatch, missing request or provider-reported error."""
    pass
