from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Any, Mapping
import os

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError


DEFAULT_DATABASE_ID = "(default)"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"


class SettingsError(ValueError):
    """Raised when settings values are invalid."""


class ServiceAccount(BaseModel):
    """Service account credentials.

    Accepts the underscored keys of a downloaded key file as well as the
    camelCase spelling used by some deployment tools.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    project_id: str = Field(validation_alias=AliasChoices("project_id", "projectId"))
    database_id: str | None = Field(default=None, validation_alias=AliasChoices("database_id", "databaseId"))
    private_key_id: str = Field(validation_alias=AliasChoices("private_key_id", "privateKeyId"))
    private_key: str = Field(validation_alias=AliasChoices("private_key", "privateKey"))
    client_email: str = Field(validation_alias=AliasChoices("client_email", "clientEmail"))
    client_id: str | None = Field(default=None, validation_alias=AliasChoices("client_id", "clientId"))
    token_uri: str = Field(default=DEFAULT_TOKEN_URI, validation_alias=AliasChoices("token_uri", "tokenUri"))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ServiceAccount":
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise SettingsError(f"Invalid service account: {exc}") from exc

    @classmethod
    def from_file(cls, path: str | Path) -> "ServiceAccount":
        file_path = Path(path)
        try:
            data = json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise SettingsError(f"Cannot read service account file: {file_path}") from exc
        if not isinstance(data, dict):
            raise SettingsError(f"Service account file must contain a JSON object: {file_path}")
        return cls.from_mapping(data)

    def to_info(self) -> dict[str, str]:
        """Return the key-file shaped dict google-auth expects."""
        info = {
            "type": "service_account",
            "project_id": self.project_id,
            "private_key_id": self.private_key_id,
            "private_key": self.private_key,
            "client_email": self.client_email,
            "token_uri": self.token_uri,
        }
        if self.client_id:
            info["client_id"] = self.client_id
        return info


@dataclass(frozen=True)
class FirebaseSettings:
    project_id: str
    database_id: str = DEFAULT_DATABASE_ID
    api_key: str | None = None
    service_account: ServiceAccount | None = None
    timeout_sec: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_service_account(
        cls,
        service_account: ServiceAccount | Mapping[str, Any],
        *,
        api_key: str | None = None,
        timeout_sec: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> "FirebaseSettings":
        account = (
            service_account
            if isinstance(service_account, ServiceAccount)
            else ServiceAccount.from_mapping(service_account)
        )
        return cls(
            project_id=account.project_id,
            database_id=account.database_id or DEFAULT_DATABASE_ID,
            api_key=api_key,
            service_account=account,
            timeout_sec=timeout_sec,
        )


def _read_dotenv(dotenv_path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    if not dotenv_path.exists():
        return values

    for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'").strip('"')
        if key:
            values[key] = value
    return values


def _get_optional_str(values: Mapping[str, str], key: str) -> str | None:
    value = values.get(key, "").strip()
    return value or None


def _get_float(values: Mapping[str, str], key: str, default: float) -> float:
    raw_value = values.get(key)
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise SettingsError(f"{key} must be a number: {raw_value}") from exc
    if value <= 0:
        raise SettingsError(f"{key} must be > 0: {value}")
    return value


def load_settings(
    *,
    env: Mapping[str, str] | None = None,
    dotenv_path: str | Path = ".env",
) -> FirebaseSettings:
    """Load settings from .env and environment variables.

    Priority: OS environment > .env > default. The project id falls back to
    the one in the service account file when FIREBASE_PROJECT_ID is unset.
    """

    env_values = dict(env) if env is not None else dict(os.environ)
    dotenv_values = _read_dotenv(Path(dotenv_path))
    merged: dict[str, str] = {**dotenv_values, **env_values}

    credentials_path = _get_optional_str(merged, "GOOGLE_APPLICATION_CREDENTIALS")
    service_account = ServiceAccount.from_file(credentials_path) if credentials_path else None

    project_id = _get_optional_str(merged, "FIREBASE_PROJECT_ID")
    if project_id is None and service_account is not None:
        project_id = service_account.project_id
    if not project_id:
        raise SettingsError("FIREBASE_PROJECT_ID must not be empty.")

    database_id = _get_optional_str(merged, "FIREBASE_DATABASE_ID")
    if database_id is None and service_account is not None:
        database_id = service_account.database_id

    return FirebaseSettings(
        project_id=project_id,
        database_id=database_id or DEFAULT_DATABASE_ID,
        api_key=_get_optional_str(merged, "FIREBASE_API_KEY"),
        service_account=service_account,
        timeout_sec=_get_float(merged, "FIREBASE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
    )
