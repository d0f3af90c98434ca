from __future__ import annotations

from dataclasses import dataclass, field, replace
import json
import logging
from typing import Any, Mapping, Sequence

import httpx

from firebase_rest.errors import InvalidArgumentError
from firebase_rest.service import FirebaseService
from firebase_rest.settings import FirebaseSettings
from firebase_rest.tokens import ServiceAccountTokenGetter, TokenGetter


LOGGER = logging.getLogger(__name__)

AUTH_API_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
OAUTH_SCOPE = "https://www.googleapis.com/auth/identitytoolkit"
UID_LENGTH = 28


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        LOGGER.warning("Ignoring non-numeric account field: %r", value)
        return None


def _parse_claims(raw: Any) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        claims = json.loads(raw)
    except ValueError:
        LOGGER.warning("Ignoring malformed customAttributes: %r", raw)
        return {}
    return claims if isinstance(claims, dict) else {}


@dataclass(frozen=True)
class Tokens:
    id_token: str
    refresh_token: str | None = None

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "Tokens":
        return cls(id_token=str(data["idToken"]), refresh_token=data.get("refreshToken"))


@dataclass(frozen=True)
class User:
    uid: str
    name: str | None = None
    email: str | None = None
    email_verified: bool = False
    photo_url: str | None = None
    password_updated_at: int | None = None
    valid_since: int | None = None
    claims: dict[str, Any] = field(default_factory=dict)
    disabled: bool = False
    last_login_at: int | None = None
    created_at: int | None = None

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "User":
        return cls(
            uid=str(data["localId"]),
            name=data.get("displayName"),
            email=data.get("email"),
            email_verified=bool(data.get("emailVerified", False)),
            photo_url=data.get("photoUrl"),
            password_updated_at=_optional_int(data.get("passwordUpdatedAt")),
            valid_since=_optional_int(data.get("validSince")),
            claims=_parse_claims(data.get("customAttributes")),
            disabled=bool(data.get("disabled", False)),
            last_login_at=_optional_int(data.get("lastLoginAt")),
            created_at=_optional_int(data.get("createdAt")),
        )


@dataclass(frozen=True)
class SignInResult:
    user: User | None
    tokens: Tokens
    is_new_user: bool | None = None


@dataclass(frozen=True)
class AccountQueryResult:
    count: int
    users: list[User]


class Auth(FirebaseService):
    """Identity Platform accounts over REST.

    Calls made on behalf of an end user (sign-in, sign-up, password reset)
    go out with the API key only. Administrative calls keyed by uid use an
    OAuth token for the identitytoolkit scope. Identifiers of exactly
    ``UID_LENGTH`` characters are treated as uids, anything else as an ID
    token.
    """

    def __init__(
        self,
        settings: FirebaseSettings,
        *,
        token_getter: TokenGetter | None = None,
        http_client: httpx.Client | None = None,
        api_url: str = AUTH_API_URL,
    ) -> None:
        super().__init__(
            "auth",
            api_url,
            settings,
            token_getter=token_getter,
            http_client=http_client,
        )

    def user_request(self, method: str, path: str, body: Any = None) -> Any:
        return self.request(method, path, body=body, authorized=False)

    def sign_in_with_email_and_password(self, email: str, password: str) -> SignInResult:
        response = self.user_request(
            "POST",
            "accounts:signInWithPassword",
            {"email": email.lower(), "password": password, "returnSecureToken": True},
        )
        return self._sign_in_result(response)

    def sign_in_with_idp(
        self,
        post_body: str,
        request_uri: str,
        *,
        return_idp_credential: bool = False,
    ) -> SignInResult:
        response = self.user_request(
            "POST",
            "accounts:signInWithIdp",
            {
                "postBody": post_body,
                "requestUri": request_uri,
                "returnSecureToken": True,
                "returnIdpCredential": return_idp_credential,
            },
        )
        return self._sign_in_result(response, is_new_user=response.get("isNewUser"))

    def sign_in_with_custom_token(self, token: str) -> SignInResult:
        response = self.user_request(
            "POST",
            "accounts:signInWithCustomToken",
            {"token": token, "returnSecureToken": True},
        )
        return self._sign_in_result(response)

    def refresh_token(self, refresh_token: str) -> Tokens:
        response = self.request(
            "POST",
            SECURE_TOKEN_URL,
            body={"grant_type": "refresh_token", "refresh_token": refresh_token},
            authorized=False,
        )
        return Tokens(id_token=str(response["id_token"]), refresh_token=response.get("refresh_token"))

    def sign_up(self, email: str, password: str, name: str | None = None) -> SignInResult:
        response = self.user_request(
            "POST",
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        if name is not None:
            self.user_request("POST", "accounts:update", {"displayName": name, "idToken": response["idToken"]})
        result = self._sign_in_result(response)
        if name is not None and result.user is not None:
            result = replace(result, user=replace(result.user, name=name))
        return result

    def get_user(self, id_token_or_uid: str) -> User | None:
        if len(id_token_or_uid) == UID_LENGTH:
            response = self.request("POST", "accounts:lookup", body={"localId": [id_token_or_uid]}, authorized=OAUTH_SCOPE)
        else:
            response = self.user_request("POST", "accounts:lookup", {"idToken": id_token_or_uid})
        users = response.get("users") or []
        return User.from_response(users[0]) if users else None

    def get_users(
        self,
        *,
        uids: Sequence[str] | None = None,
        emails: Sequence[str] | None = None,
    ) -> list[User | None]:
        """Look up accounts in bulk; the result follows the order of ``uids`` (or ``emails``)."""
        if uids is None and emails is None:
            raise InvalidArgumentError("get_users() requires uids or emails.")
        body: dict[str, Any] = {}
        if uids is not None:
            body["localId"] = list(uids)
        if emails is not None:
            body["email"] = list(emails)
        response = self.request("POST", "accounts:lookup", body=body, authorized=OAUTH_SCOPE)

        key = "localId" if uids is not None else "email"
        found = {data.get(key): User.from_response(data) for data in response.get("users") or []}
        lookups = uids if uids is not None else emails
        return [found.get(lookup) for lookup in lookups or []]

    def update_user(
        self,
        id_token_or_uid: str,
        *,
        name: str | None = None,
        email: str | None = None,
        photo_url: str | None = None,
    ) -> Tokens:
        if not id_token_or_uid:
            raise InvalidArgumentError("update_user() requires an ID token or uid.")
        id_token = self._id_token(id_token_or_uid)
        body: dict[str, Any] = {"idToken": id_token, "returnSecureToken": True}
        for key, value in (("displayName", name), ("email", email), ("photoUrl", photo_url)):
            if value is not None:
                body[key] = value
        return Tokens.from_response(self.user_request("POST", "accounts:update", body))

    def update_password(self, id_token_or_uid: str, password: str) -> Tokens:
        if not id_token_or_uid or not password:
            raise InvalidArgumentError("update_password() requires an ID token or uid and a password.")
        if len(id_token_or_uid) == UID_LENGTH:
            response = self.request(
                "POST",
                "accounts:update",
                body={"localId": id_token_or_uid, "password": password, "returnSecureToken": True},
                authorized=OAUTH_SCOPE,
            )
        else:
            response = self.user_request(
                "POST",
                "accounts:update",
                {"idToken": id_token_or_uid, "password": password, "returnSecureToken": True},
            )
        return Tokens.from_response(response)

    def set_custom_user_claims(self, uid: str, claims: Mapping[str, Any]) -> None:
        self.request(
            "POST",
            "accounts:update",
            body={"localId": uid, "customAttributes": json.dumps(dict(claims))},
            authorized=OAUTH_SCOPE,
        )

    def delete_user(self, id_token_or_uid: str) -> None:
        if len(id_token_or_uid) == UID_LENGTH:
            self.request("POST", "accounts:delete", body={"localId": id_token_or_uid}, authorized=OAUTH_SCOPE)
        else:
            self.user_request("POST", "accounts:delete", {"idToken": id_token_or_uid})

    def send_verification(self, id_token_or_uid: str) -> None:
        id_token = self._id_token(id_token_or_uid)
        self.user_request("POST", "accounts:sendOobCode", {"requestType": "VERIFY_EMAIL", "idToken": id_token})

    def verify_account(self, oob_code: str) -> Tokens:
        return Tokens.from_response(self.user_request("POST", "accounts:update", {"oobCode": oob_code}))

    def request_password_reset(self, email: str) -> None:
        self.user_request("POST", "accounts:sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})

    def reset_password(self, oob_code: str, new_password: str) -> None:
        self.user_request("POST", "accounts:resetPassword", {"oobCode": oob_code, "newPassword": new_password})

    def query_accounts(
        self,
        expression: Sequence[Mapping[str, str]] = (),
        *,
        limit: int | None = None,
        offset: int | None = None,
        sort_by: str | None = None,
        order: str | None = None,
        return_user_info: bool = True,
        tenant_id: str | None = None,
    ) -> AccountQueryResult:
        body: dict[str, Any] = {"returnUserInfo": return_user_info}
        if expression:
            body["expression"] = [dict(item) for item in expression]
        if limit is not None:
            body["limit"] = str(limit)
        if offset is not None:
            body["offset"] = str(offset)
        if sort_by is not None:
            body["sortBy"] = sort_by
        if order is not None:
            body["order"] = order
        if tenant_id is not None:
            body["tenantId"] = tenant_id

        response = self.request(
            "POST",
            f"projects/{self.settings.project_id}/accounts:query",
            body=body,
            authorized=OAUTH_SCOPE,
        )
        return AccountQueryResult(
            count=_optional_int(response.get("recordsCount")) or 0,
            users=[User.from_response(data) for data in response.get("userInfo") or []],
        )

    def create_custom_token(self, uid: str, claims: Mapping[str, Any] | None = None) -> str:
        """Sign a custom token that ``sign_in_with_custom_token`` exchanges for an ID token."""
        if self.settings.service_account is None:
            raise InvalidArgumentError("create_custom_token() requires service account settings.")
        payload: dict[str, Any] = {"uid": uid}
        if claims:
            payload["claims"] = dict(claims)
        signer = self.get_token
        if not isinstance(signer, ServiceAccountTokenGetter):
            signer = ServiceAccountTokenGetter(self.settings.service_account, "auth")
        return signer.signed_token(payload)

    def get_user_token(self, uid: str) -> str:
        return self.sign_in_with_custom_token(self.create_custom_token(uid)).tokens.id_token

    def _id_token(self, id_token_or_uid: str) -> str:
        if len(id_token_or_uid) == UID_LENGTH:
            return self.get_user_token(id_token_or_uid)
        return id_token_or_uid

    def _sign_in_result(self, response: Mapping[str, Any], *, is_new_user: bool | None = None) -> SignInResult:
        tokens = Tokens.from_response(response)
        return SignInResult(user=self.get_user(tokens.id_token), tokens=tokens, is_new_user=is_new_user)
