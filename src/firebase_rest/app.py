from __future__ import annotations

from typing import Any, Mapping

import httpx

from firebase_rest.auth import Auth
from firebase_rest.firestore.client import Firestore
from firebase_rest.settings import FirebaseSettings, ServiceAccount, load_settings
from firebase_rest.tokens import TokenGetter


class FirebaseApp:
    """Holds settings and credentials shared by the service clients."""

    def __init__(
        self,
        settings: FirebaseSettings,
        *,
        token_getter: TokenGetter | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings
        self._token_getter = token_getter
        self._http_client = http_client

    @classmethod
    def from_service_account(
        cls,
        service_account: ServiceAccount | Mapping[str, Any],
        *,
        api_key: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> "FirebaseApp":
        return cls(
            FirebaseSettings.from_service_account(service_account, api_key=api_key),
            http_client=http_client,
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "FirebaseApp":
        return cls(load_settings(**kwargs))

    def firestore(self) -> Firestore:
        return Firestore(
            self.settings,
            token_getter=self._token_getter,
            http_client=self._http_client,
        )

    def auth(self) -> Auth:
        return Auth(
            self.settings,
            token_getter=self._token_getter,
            http_client=self._http_client,
        )
