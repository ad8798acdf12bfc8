"""
Error taxonomy for the social connector subsystem.

Every error carries the HTTP status it is rendered with; the API layer
turns them into ``{"error": message, "code": ClassName}`` responses and
the client library maps ``code`` back to the same class.
"""

from __future__ import annotations

from typing import Dict, Optional, Type


class SocialConnectorError(Exception):
    """Base class for all subsystem errors."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return type(self).__name__


class MissingClientCredentials(SocialConnectorError):
    """No usable client id / secret for a platform (team config or environment)."""


class StateMismatch(SocialConnectorError):
    """Anti-forgery state on the redirect did not match the pending authorization."""


class AuthorizationDenied(SocialConnectorError):
    """The provider redirected back with ``error`` instead of a code."""


class TokenExchangeFailed(SocialConnectorError):
    status_code = 502

    def __init__(self, message: str, provider_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.provider_status = provider_status


class InvalidTokenPayload(SocialConnectorError):
    status_code = 422


class NotConnected(SocialConnectorError):
    status_code = 409


class TokenExpired(SocialConnectorError):
    status_code = 409


class AdapterFetchFailed(SocialConnectorError):
    status_code = 502

    def __init__(
        self,
        message: str,
        platform: Optional[str] = None,
        provider_status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.platform = platform
        self.provider_status = provider_status


class FeedNotFound(SocialConnectorError):
    status_code = 404


class InvalidFeed(SocialConnectorError):
    status_code = 422


class NotTeamMember(SocialConnectorError):
    status_code = 403


class NotTeamAdmin(SocialConnectorError):
    status_code = 403


ERRORS_BY_CODE: Dict[str, Type[SocialConnectorError]] = {
    cls.__name__: cls
    for cls in (
        MissingClientCredentials,
        StateMismatch,
        AuthorizationDenied,
        TokenExchangeFailed,
        InvalidTokenPayload,
        NotConnected,
        TokenExpired,
        AdapterFetchFailed,
        FeedNotFound,
        InvalidFeed,
        NotTeamMember,
        NotTeamAdmin,
    )
}
