from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from firebase_rest.errors import RequestError, StatusError
from firebase_rest.settings import FirebaseSettings
from firebase_rest.tokens import ServiceAccountTokenGetter, TokenGetter


LOGGER = logging.getLogger(__name__)


class FirebaseService:
    """Authenticated JSON-over-HTTP access to one Google REST API."""

    _DEFAULT_HEADERS = {
        "Content-Type": "application/json",
        "User-Agent": "firebase-rest/0.1",
    }

    def __init__(
        self,
        service: str,
        api_url: str,
        settings: FirebaseSettings,
        *,
        token_getter: TokenGetter | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._service = service
        self._api_url = api_url.rstrip("/")
        self._settings = settings
        if token_getter is None:
            if settings.service_account is None:
                raise ValueError("token_getter is required when settings carry no service account.")
            token_getter = ServiceAccountTokenGetter(settings.service_account, service)
        self.get_token = token_getter
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.Client(headers=self._DEFAULT_HEADERS)

    @property
    def settings(self) -> FirebaseSettings:
        return self._settings

    def request(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        *,
        authorized: bool | str = True,
    ) -> Any:
        """Send one request and return the decoded JSON payload.

        ``path`` is relative to the API URL unless it is an absolute URL.

        ``authorized`` selects the Authorization header: ``True`` uses the
        service token, a string requests an OAuth token for that scope and
        ``False`` sends none. An ``{"error": {...}}`` envelope raises
        StatusError.
        """

        if path.startswith(("https://", "http://")):
            url = path
        else:
            if path and path[0] not in ":/":
                path = "/" + path
            url = f"{self._api_url}{path}"

        query: dict[str, Any] = dict(params or {})
        if self._settings.api_key:
            query["key"] = self._settings.api_key

        headers = dict(self._DEFAULT_HEADERS)
        if isinstance(authorized, str):
            headers["Authorization"] = f"Bearer {self.get_token(authorized)}"
        elif authorized:
            headers["Authorization"] = f"Bearer {self.get_token()}"

        LOGGER.debug("%s %s", method, url)
        try:
            response = self._http_client.request(
                method,
                url,
                params=query,
                json=body,
                headers=headers,
                timeout=self._settings.timeout_sec,
            )
        except httpx.HTTPError as exc:
            raise RequestError(f"HTTP request error ({method} {url}): {exc}") from exc

        return _decode_response(response)

    def close(self) -> None:
        if self._owns_client:
            self._http_client.close()

    def __enter__(self) -> "FirebaseService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _decode_response(response: httpx.Response) -> Any:
    if not response.content:
        if response.status_code >= 400:
            raise StatusError(response.status_code, response.reason_phrase)
        return {}

    try:
        data = response.json()
    except ValueError:
        if response.status_code >= 400:
            raise StatusError(response.status_code, response.text.strip() or response.reason_phrase)
        raise StatusError(response.status_code, "Response body is not JSON")

    if isinstance(data, dict) and data.get("error"):
        error = data["error"]
        if isinstance(error, dict):
            raise StatusError.from_payload(error)
        raise StatusError(response.status_code, str(error))
    if isinstance(data, list) and data and isinstance(data[0], dict) and data[0].get("error"):
        raise StatusError.from_payload(data[0]["error"])
    if response.status_code >= 400:
        raise StatusError(response.status_code, response.reason_phrase)
    return data
