"""Chooses how the daemon proves its identity: client secret or certificate."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from .config import (
    CLIENT_SECRET_PLACEHOLDER,
    AuthenticationConfig,
    CertificateDescription,
    CertificateSource,
    resolve_secret,
)
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

PKCS12_SUFFIXES = {".pfx", ".p12"}

# msal accepts either the secret string or a dict describing the certificate.
ClientCredential = Union[str, Dict[str, Optional[str]]]


class CredentialKind(str, Enum):
    CLIENT_SECRET = "client_secret"
    CERTIFICATE = "certificate"


@dataclass(frozen=True)
class SelectedCredential:
    kind: CredentialKind
    client_credential: ClientCredential

    def __repr__(self) -> str:
        return f"SelectedCredential(kind={self.kind.value!r})"


def is_usable_secret(secret: Optional[str]) -> bool:
    return bool(secret and secret.strip()) and secret != CLIENT_SECRET_PLACEHOLDER


def choose_credential_kind(config: AuthenticationConfig) -> CredentialKind:
    """Secret wins when it is set to a real value, otherwise a certificate is required."""
    if is_usable_secret(config.client_secret_value):
        return CredentialKind.CLIENT_SECRET
    if config.certificate is not None:
        return CredentialKind.CERTIFICATE
    raise ConfigurationError(
        "You must choose between using client secret or certificate. "
        "Please update appsettings.json file."
    )


def select_credential(
    config: AuthenticationConfig,
    certificate_loader: Optional[Callable[[CertificateDescription], Dict[str, Optional[str]]]] = None,
) -> SelectedCredential:
    kind = choose_credential_kind(config)
    if kind is CredentialKind.CLIENT_SECRET:
        return SelectedCredential(kind=kind, client_credential=config.client_secret_value or "")

    if config.certificate is None:
        raise ConfigurationError("Certificate authentication selected without a Certificate section")
    loader = certificate_loader or load_certificate
    material = loader(config.certificate)
    logger.debug("Loaded certificate with thumbprint %s", material.get("thumbprint"))
    return SelectedCredential(kind=kind, client_credential=material)


def load_certificate(description: CertificateDescription) -> Dict[str, Optional[str]]:
    """Resolves a certificate description into msal client credential material."""
    password = resolve_secret(description.certificate_password)

    if description.source_type is CertificateSource.PATH:
        if not description.certificate_disk_path:
            raise ConfigurationError("CertificateDiskPath is required for SourceType 'Path'")
        path = Path(description.certificate_disk_path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise ConfigurationError(f"Failed to read certificate at {path}: {exc}") from exc
        if path.suffix.lower() in PKCS12_SUFFIXES:
            return _material_from_pkcs12(data, password, description.certificate_thumbprint)
        return _material_from_pem(data, password, description.certificate_thumbprint)

    if description.source_type is CertificateSource.BASE64_ENCODED:
        if not description.base64_encoded_value:
            raise ConfigurationError(
                "Base64EncodedValue is required for SourceType 'Base64Encoded'"
            )
        try:
            data = base64.b64decode(description.base64_encoded_value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ConfigurationError(f"Base64EncodedValue is not valid base64: {exc}") from exc
        return _material_from_pkcs12(data, password, description.certificate_thumbprint)

    raise ConfigurationError(
        f"Certificate source '{description.source_type.value}' reads from an OS certificate "
        "store, which is not available to this program. Export the certificate and use "
        "SourceType 'Path' or 'Base64Encoded'."
    )


def certificate_thumbprint(certificate: x509.Certificate) -> str:
    return certificate.fingerprint(hashes.SHA1()).hex().upper()  # noqa: S303


def _material_from_pem(
    data: bytes, password: Optional[str], thumbprint: Optional[str]
) -> Dict[str, Optional[str]]:
    if b"PRIVATE KEY" not in data:
        raise ConfigurationError("PEM certificate file does not contain a private key")

    if not thumbprint:
        try:
            certificate = x509.load_pem_x509_certificate(data)
        except ValueError as exc:
            raise ConfigurationError(
                "PEM file has no certificate; set CertificateThumbprint explicitly"
            ) from exc
        thumbprint = certificate_thumbprint(certificate)

    return {
        "private_key": data.decode("utf-8"),
        "thumbprint": thumbprint,
        "passphrase": password,
    }


def _material_from_pkcs12(
    data: bytes, password: Optional[str], thumbprint: Optional[str]
) -> Dict[str, Optional[str]]:
    try:
        key, certificate, _ = pkcs12.load_key_and_certificates(
            data, password.encode("utf-8") if password else None
        )
    except ValueError as exc:
        raise ConfigurationError(f"Cannot open PKCS#12 certificate: {exc}") from exc

    if key is None or certificate is None:
        raise ConfigurationError("PKCS#12 bundle must hold both a private key and a certificate")

    actual = certificate_thumbprint(certificate)
    if thumbprint and thumbprint != actual:
        raise ConfigurationError(
            f"Certificate thumbprint {actual} does not match configured {thumbprint}"
        )

    private_key = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return {"private_key": private_key.decode("utf-8"), "thumbprint": actual, "passphrase": None}
