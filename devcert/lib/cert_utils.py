"""Certificate inspection helpers for verifying issued bundles."""

from datetime import UTC, datetime

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import ExtendedKeyUsageOID

from .errors import VerificationError
from .models import DevCertificate


def deserialize_private_key(pem_data: bytes) -> RSAPrivateKey:
    """Deserialize private key from PEM bytes."""
    key = serialization.load_pem_private_key(pem_data, password=None)
    if not isinstance(key, RSAPrivateKey):
        raise ValueError("expected RSA private key")
    return key


def deserialize_certificate(pem_data: bytes) -> x509.Certificate:
    """Deserialize certificate from PEM bytes."""
    return x509.load_pem_x509_certificate(pem_data)


def _common_name(name: x509.Name) -> str:
    attributes = name.get_attributes_for_oid(x509.NameOID.COMMON_NAME)
    if not attributes:
        raise ValueError("name has no CN attribute")
    value = attributes[0].value
    if not isinstance(value, str):
        raise ValueError("CN must be string")
    return value


def get_common_name(cert: x509.Certificate) -> str:
    """Return the subject CN."""
    return _common_name(cert.subject)


def get_issuer_common_name(cert: x509.Certificate) -> str:
    """Return the issuer CN."""
    return _common_name(cert.issuer)


def get_subject_alt_names(cert: x509.Certificate) -> list[str]:
    """Return DNS names and IP addresses from subjectAltName as strings.

    Returns an empty list when the extension is absent.
    """
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return []
    names: list[str] = list(san.get_values_for_type(x509.DNSName))
    names += [str(address) for address in san.get_values_for_type(x509.IPAddress)]
    return names


def is_ca_certificate(cert: x509.Certificate) -> bool:
    """True when BasicConstraints marks the certificate as a CA."""
    try:
        bc = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return False
    return bc.ca


def is_server_certificate(cert: x509.Certificate) -> bool:
    """True when the certificate is an end entity usable for TLS server auth."""
    if is_ca_certificate(cert):
        return False
    try:
        eku = cert.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
    except x509.ExtensionNotFound:
        return False
    return ExtendedKeyUsageOID.SERVER_AUTH in eku


def is_currently_valid(cert: x509.Certificate, now: datetime | None = None) -> bool:
    """True when ``now`` falls inside the validity window."""
    now = now or datetime.now(UTC)
    return cert.not_valid_before_utc <= now <= cert.not_valid_after_utc


def key_matches_certificate(key: RSAPrivateKey, cert: x509.Certificate) -> bool:
    """True when ``key`` is the private half of the certificate's public key."""
    return key.public_key().public_numbers() == cert.public_key().public_numbers()  # type: ignore[union-attr]


def validate_bundle(bundle: DevCertificate) -> None:
    """Check that a returned bundle is a usable leaf plus its root.

    Raises:
        VerificationError: If parsing fails, the leaf is not directly issued by
            the root, the key does not match the leaf, or the CN differs
    """
    try:
        leaf = deserialize_certificate(bundle.cert.encode("utf-8"))
        root = deserialize_certificate(bundle.ca.encode("utf-8"))
        key = deserialize_private_key(bundle.key.encode("utf-8"))
    except ValueError as e:
        raise VerificationError(f"unreadable PEM in bundle: {e}") from e

    try:
        leaf.verify_directly_issued_by(root)
    except (ValueError, TypeError) as e:
        raise VerificationError(f"certificate is not signed by the root CA: {e}") from e
    except InvalidSignature as e:
        raise VerificationError("certificate signature does not verify against the root CA") from e

    if not key_matches_certificate(key, leaf):
        raise VerificationError("private key does not match certificate")
    if get_common_name(leaf) != bundle.common_name:
        raise VerificationError(
            f"certificate CN {get_common_name(leaf)!r} does not match {bundle.common_name!r}"
        )
