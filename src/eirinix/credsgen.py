"""
Certificate generation for the webhook server.

``CertificateGenerator`` is the capability the certificate lifecycle depends
on. ``InMemoryGenerator`` creates a self-signed CA and a server certificate
signed by it, entirely in memory, using ``cryptography``.
"""

import ipaddress
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from eirinix.constants import CERT_KEY_SIZE, CERT_VALIDITY_DAYS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Certificate:
    """PEM encoded certificate and private key."""

    certificate: bytes
    private_key: bytes
    is_ca: bool = False


@dataclass(frozen=True)
class CertificateRequest:
    """Parameters of a certificate to generate."""

    common_name: str
    alternative_names: list[str] = field(default_factory=list)
    is_ca: bool = False
    validity_days: int = CERT_VALIDITY_DAYS


class CertificateGenerator(Protocol):
    """Capability producing key pairs and certificates."""

    def generate_certificate(
        self, request: CertificateRequest, ca: Certificate | None = None
    ) -> Certificate:
        """Generate a certificate, self-signed when ``ca`` is None."""
        ...


def _subject_alternative_names(names: list[str]) -> list[x509.GeneralName]:
    alternative_names: list[x509.GeneralName] = []
    for name in names:
        try:
            alternative_names.append(x509.IPAddress(ipaddress.ip_address(name)))
        except ValueError:
            alternative_names.append(x509.DNSName(name))
    return alternative_names


class InMemoryGenerator:
    """Generates RSA keys and X.509 certificates in memory."""

    def __init__(self, key_size: int = CERT_KEY_SIZE):
        self.key_size = key_size

    def generate_certificate(
        self, request: CertificateRequest, ca: Certificate | None = None
    ) -> Certificate:
        key = rsa.generate_private_key(public_exponent=65537, key_size=self.key_size)
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, request.common_name)])

        if ca is None:
            issuer = subject
            signing_key = key
        else:
            ca_cert = x509.load_pem_x509_certificate(ca.certificate)
            issuer = ca_cert.subject
            signing_key = serialization.load_pem_private_key(ca.private_key, password=None)

        now = datetime.now(UTC)
        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + timedelta(days=request.validity_days))
            .add_extension(
                x509.BasicConstraints(ca=request.is_ca, path_length=None),
                critical=True,
            )
        )

        if request.is_ca:
            builder = builder.add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
        else:
            names = request.alternative_names or [request.common_name]
            builder = builder.add_extension(
                x509.SubjectAlternativeName(_subject_alternative_names(names)),
                critical=False,
            ).add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )

        cert = builder.sign(signing_key, hashes.SHA256())
        logger.debug(
            f"Generated {'CA' if request.is_ca else 'server'} certificate "
            f"for {request.common_name}"
        )

        return Certificate(
            certificate=cert.public_bytes(serialization.Encoding.PEM),
            private_key=key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            ),
            is_ca=request.is_ca,
        )


def certificate_is_valid(
    certificate: bytes, host: str, renewal_window: timedelta
) -> bool:
    """
    Check that a PEM certificate covers ``host`` and is not about to expire.

    Args:
        certificate: PEM encoded certificate
        host: DNS name or IP address the certificate must be valid for
        renewal_window: Certificates expiring within this window are invalid

    Returns:
        True if the certificate can keep being served
    """
    try:
        cert = x509.load_pem_x509_certificate(certificate)
    except ValueError:
        return False

    now = datetime.now(UTC)
    if cert.not_valid_before_utc > now or cert.not_valid_after_utc - renewal_window <= now:
        return False

    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return False

    try:
        return ipaddress.ip_address(host) in san.get_values_for_type(x509.IPAddress)
    except ValueError:
        return host in san.get_values_for_type(x509.DNSName)
