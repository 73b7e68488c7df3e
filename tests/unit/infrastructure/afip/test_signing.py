"""Unit tests for login ticket signing."""

import base64
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs7
from cryptography.x509.oid import NameOID

from src.core.exceptions import ConnectivityError, ValidationError
from src.infrastructure.afip.signing import CmsSigner, UnconfiguredSigner

TICKET = b'<?xml version="1.0"?><loginTicketRequest version="1.0"/>'


@pytest.fixture(scope="module")
def certificate_and_key() -> tuple[bytes, bytes]:
    """Provide a self-signed certificate and its private key as PEM."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "validation-test")])
    now = datetime.now(UTC)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return certificate.public_bytes(serialization.Encoding.PEM), key_pem


@pytest.mark.unit
class TestCmsSigner:
    """Test suite for CMS signing."""

    def test_sign_embeds_the_certificate(
        self, certificate_and_key: tuple[bytes, bytes]
    ) -> None:
        """Test that the CMS is base64 DER carrying the signing certificate."""
        certificate_pem, key_pem = certificate_and_key
        signer = CmsSigner(certificate_pem, key_pem)

        cms = base64.b64decode(signer.sign(TICKET))

        certificates = pkcs7.load_der_pkcs7_certificates(cms)
        assert len(certificates) == 1
        assert certificates[0] == x509.load_pem_x509_certificate(certificate_pem)
        # Content is embedded, not detached
        assert TICKET in cms

    def test_from_files(
        self, certificate_and_key: tuple[bytes, bytes], tmp_path: Path
    ) -> None:
        """Test loading the certificate and key from PEM files."""
        certificate_pem, key_pem = certificate_and_key
        cert_path = tmp_path / "cert.pem"
        key_path = tmp_path / "key.pem"
        cert_path.write_bytes(certificate_pem)
        key_path.write_bytes(key_pem)

        signer = CmsSigner.from_files(str(cert_path), str(key_path))

        assert signer.sign(TICKET)

    def test_invalid_key_is_rejected(
        self, certificate_and_key: tuple[bytes, bytes]
    ) -> None:
        """Test that unreadable key material raises ValidationError."""
        certificate_pem, _ = certificate_and_key

        with pytest.raises(ValidationError, match="Invalid AFIP certificate"):
            CmsSigner(certificate_pem, b"not a key")

    def test_unconfigured_signer(self) -> None:
        """Test that signing without a certificate degrades as connectivity."""
        with pytest.raises(ConnectivityError) as exc_info:
            UnconfiguredSigner().sign(TICKET)

        assert exc_info.value.service == "wsaa"
