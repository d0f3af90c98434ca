from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

from google.auth import jwt
from google.auth.transport.requests import Request
from google.oauth2 import service_account as oauth2_service_account

from firebase_rest.settings import ServiceAccount


LOGGER = logging.getLogger(__name__)

AUDIENCES = {
    "auth": "https://identitytoolkit.googleapis.com/google.identity.identitytoolkit.v1.IdentityToolkit",
    "firestore": "https://firestore.googleapis.com/google.firestore.v1.Firestore",
}


class TokenGetter(Protocol):
    def __call__(self, scope: str | None = None) -> str:
        """Return a bearer token, an OAuth access token when a scope is given."""


def _token_text(token: Any) -> str:
    if isinstance(token, bytes):
        return token.decode("ascii")
    return str(token)


class ServiceAccountTokenGetter:
    """Mints bearer tokens for one Google API from a service account.

    Without a scope the token is a self-signed JWT whose audience is the
    service endpoint, which needs no round trip. With a scope an OAuth access
    token is exchanged at the account's token URI. Credentials are kept per
    scope and refreshed once google-auth reports them as no longer valid.
    """

    def __init__(self, account: ServiceAccount, service: str) -> None:
        if service not in AUDIENCES:
            raise ValueError(f"Unknown service for token audience: {service}")
        self._account = account
        self._service = service
        self._jwt_credentials = jwt.Credentials.from_service_account_info(
            account.to_info(),
            audience=AUDIENCES[service],
        )
        self._scoped_credentials: dict[str, Any] = {}

    def __call__(self, scope: str | None = None) -> str:
        if scope:
            return self._oauth_token(scope)
        if not self._jwt_credentials.valid:
            LOGGER.debug("Signing service account JWT: service=%s", self._service)
            self._jwt_credentials.refresh(Request())
        return _token_text(self._jwt_credentials.token)

    def signed_token(self, claims: Mapping[str, Any]) -> str:
        """Sign a one-off JWT for the service audience carrying extra ``claims``."""
        credentials = jwt.Credentials.from_service_account_info(
            self._account.to_info(),
            audience=AUDIENCES[self._service],
            additional_claims=dict(claims),
        )
        credentials.refresh(Request())
        return _token_text(credentials.token)

    def _oauth_token(self, scope: str) -> str:
        credentials = self._scoped_credentials.get(scope)
        if credentials is None:
            credentials = oauth2_service_account.Credentials.from_service_account_info(
                self._account.to_info(),
                scopes=[scope],
            )
            self._scoped_credentials[scope] = credentials
        if not credentials.valid:
            LOGGER.debug("Requesting OAuth access token: scope=%s", scope)
            credentials.refresh(Request())
        return _token_text(credentials.token)


class StaticTokenGetter:
    """Returns one pre-issued token, e.g. a user's ID token or an emulator owner token."""

    def __init__(self, token: str) -> None:
        self._token = token

    def __call__(self, scope: str | None = None) -> str:
        del scope
        return self._token
