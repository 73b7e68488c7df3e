"""CMS (PKCS#7) signing of WSAA login ticket requests."""

import base64
from pathlib import Path
from typing import Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs7

from src.core.exceptions import ConnectivityError, ErrorCode, ValidationError


class TicketSigner(Protocol):
    """Signs a login ticket request and returns the base64 CMS."""

    def sign(self, ticket_request: bytes) -> str:
        """Sign a serialized login ticket request."""
        ...


class CmsSigner:
    """Signs login tickets with the certificate registered in WSAA.

    Args:
        certificate_pem: PEM encoded X.509 certificate.
        private_key_pem: PEM encoded private key of the certificate.
        passphrase: Passphrase of the private key, if encrypted.
    """

    def __init__(
        self,
        certificate_pem: bytes,
        private_key_pem: bytes,
        passphrase: str | None = None,
    ) -> None:
        try:
            self._certificate = x509.load_pem_x509_certificate(certificate_pem)
            self._private_key = serialization.load_pem_private_key(
                private_key_pem,
                password=passphrase.encode() if passphrase else None,
            )
        except (ValueError, TypeError) as e:
            raise ValidationError(
                "Invalid AFIP certificate or private key",
                error_code=ErrorCode.VALIDATION_ERROR,
                cause=e,
            ) from e

    @classmethod
    def from_files(
        cls, cert_path: str, key_path: str, passphrase: str | None = None
    ) -> "CmsSigner":
        """Load the certificate and key from PEM files."""
        return cls(
            Path(cert_path).read_bytes(),
            Path(key_path).read_bytes(),
            passphrase,
        )

    def sign(self, ticket_request: bytes) -> str:
        """Sign a login ticket request as a DER CMS with embedded content.

        Args:
            ticket_request: Serialized loginTicketRequest document.

        Returns:
            str: Base64 of the signed CMS, as expected by loginCms.
        """
        cms_der = (
            pkcs7.PKCS7SignatureBuilder()
            .set_data(ticket_request)
            .add_signer(self._certificate, self._private_key, hashes.SHA256())
            .sign(serialization.Encoding.DER, [pkcs7.PKCS7Options.Binary])
        )
        return base64.b64encode(cms_der).decode("ascii")


class UnconfiguredSigner:
    """Stands in when no certificate is configured.

    Every sign attempt raises ``ConnectivityError``, so validations degrade
    the same way they do when WSAA is unreachable.
    """

    def sign(self, ticket_request: bytes) -> str:
        """Refuse to sign."""
        raise ConnectivityError(
            "AFIP certificate and private key are not configured",
            service="wsaa",
        )
