from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError

CLIENT_SECRET_PLACEHOLDER = "[Enter here a client secret for your application]"
DEFAULT_INSTANCE = "https://login.microsoftonline.com/{0}"
DEFAULT_GRAPH_BASE_ADDRESS = "https://graph.microsoft.com/v1.0"
DEFAULT_GRAPH_SCOPE = "https://graph.microsoft.com/.default"


class SecretRef(BaseModel):
    """Reference to a secret source without storing the secret in the settings file.

    ``env`` names an environment variable injected at runtime; ``value`` is an inline
    value for local development only.
    """

    env: Optional[str] = Field(
        default=None, description="Environment variable name containing the secret"
    )
    value: Optional[str] = Field(
        default=None,
        description="Inline value (use only for local development; avoid in production)",
    )

    model_config = ConfigDict(extra="forbid")

    def resolve(self) -> str:
        if self.env:
            env_value = os.getenv(self.env)
            if env_value:
                return env_value
            raise ConfigurationError(f"Environment variable {self.env} is not set")
        if self.value:
            return self.value
        raise ConfigurationError("No secret reference provided for resolution")


SecretValue = Union[str, SecretRef]


def resolve_secret(secret: Optional[SecretValue]) -> Optional[str]:
    """Returns the plain secret, or None when none is configured.

    A ``SecretRef`` that cannot be resolved raises ``ConfigurationError``.
    """
    if secret is None:
        return None
    if isinstance(secret, str):
        return secret
    return secret.resolve()


class CertificateSource(str, Enum):
    PATH = "Path"
    BASE64_ENCODED = "Base64Encoded"
    STORE_WITH_THUMBPRINT = "StoreWithThumbprint"
    STORE_WITH_DISTINGUISHED_NAME = "StoreWithDistinguishedName"


class CertificateDescription(BaseModel):
    source_type: CertificateSource = Field(alias="SourceType")
    certificate_disk_path: Optional[Path] = Field(default=None, alias="CertificateDiskPath")
    certificate_password: Optional[SecretValue] = Field(default=None, alias="CertificatePassword")
    certificate_thumbprint: Optional[str] = Field(default=None, alias="CertificateThumbprint")
    certificate_store_path: Optional[str] = Field(default=None, alias="CertificateStorePath")
    certificate_distinguished_name: Optional[str] = Field(
        default=None, alias="CertificateDistinguishedName"
    )
    base64_encoded_value: Optional[str] = Field(default=None, alias="Base64EncodedValue")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    @field_validator("certificate_thumbprint")
    @classmethod
    def normalize_thumbprint(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.replace(":", "").replace(" ", "").upper() or None


class HttpSettings(BaseModel):
    timeout_seconds: Optional[float] = Field(
        default=None,
        alias="TimeoutSeconds",
        description="Unset keeps the HTTP library defaults",
    )
    max_retries: int = Field(default=3, alias="MaxRetries", ge=0)
    max_concurrency: int = Field(default=20, alias="MaxConcurrency", ge=1)

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class AuthenticationConfig(BaseModel):
    instance: str = Field(default=DEFAULT_INSTANCE, alias="Instance")
    tenant: str = Field(alias="Tenant")
    client_id: str = Field(alias="ClientId")
    client_secret: Optional[SecretValue] = Field(default=None, alias="ClientSecret")
    certificate: Optional[CertificateDescription] = Field(default=None, alias="Certificate")
    todo_list_base_address: str = Field(alias="TodoListBaseAddress")
    todo_list_scope: str = Field(alias="TodoListScope")
    graph_base_address: str = Field(default=DEFAULT_GRAPH_BASE_ADDRESS, alias="GraphBaseAddress")
    graph_scope: str = Field(default=DEFAULT_GRAPH_SCOPE, alias="GraphScope")
    continue_on_error: bool = Field(
        default=True,
        alias="ContinueOnError",
        description="Keep uploading To-Dos after a failed create call",
    )
    http: HttpSettings = Field(default_factory=HttpSettings, alias="Http")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    @field_validator("tenant", "client_id")
    @classmethod
    def ensure_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("todo_list_base_address", "graph_base_address")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def authority(self) -> str:
        if "{0}" in self.instance:
            return self.instance.replace("{0}", self.tenant)
        return f"{self.instance.rstrip('/')}/{self.tenant}"

    @property
    def client_secret_value(self) -> Optional[str]:
        return resolve_secret(self.client_secret)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "AuthenticationConfig":
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        # appsettings.json is JSON, which the YAML loader reads as well.
        with config_path.open("r", encoding="utf-8-sig") as handle:
            try:
                raw = yaml.safe_load(handle) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Cannot parse {config_path}: {exc}") from exc

        if not isinstance(raw, dict):
            raise ConfigurationError(f"{config_path} must contain a JSON object")

        try:
            return cls(**raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration in {config_path}:\n{exc}") from exc
