"""Test fixtures for devcert tests."""

import configparser
import ipaddress
import re
import shutil
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from devcert.lib.ca_cache import IssuanceCache
from devcert.lib.config import DevCertConfig
from devcert.lib.errors import CommandError
from devcert.lib.issuer import CertificateIssuer
from devcert.lib.openssl_config import OpenSSLConfigBuilder
from devcert.lib.process import ProcessResult
from devcert.lib.tmp_files import TempFileRegistry

requires_openssl = pytest.mark.skipif(
    shutil.which("openssl") is None, reason="openssl binary not installed"
)


class ScriptedOperator:
    """Operator stand-in that records guidance and acknowledges immediately."""

    def __init__(self) -> None:
        self.messages: list[str] = []
        self.acknowledgments = 0

    def notify(self, message: str) -> None:
        self.messages.append(message)

    async def acknowledge(self) -> None:
        self.acknowledgments += 1


class FakeRunner:
    """Async command runner answering from a table of argv prefixes.

    A response is stdout text, an exception to raise, or a list of those
    consumed one per call. Unmatched commands fail like a program exiting 1.
    """

    def __init__(self, responses: dict[tuple[str, ...], Any] | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[list[str]] = []

    async def __call__(self, args: Sequence[str], env=None, check: bool = True) -> ProcessResult:
        argv = [str(arg) for arg in args]
        self.calls.append(argv)
        for prefix, response in self.responses.items():
            if tuple(argv[: len(prefix)]) == prefix:
                if isinstance(response, list):
                    response = response.pop(0) if len(response) > 1 else response[0]
                if isinstance(response, Exception):
                    raise response
                return ProcessResult(args=argv, returncode=0, stdout=response, stderr="")
        raise CommandError(argv, 1, "not permitted in tests")

    def called_with(self, *prefix: str) -> bool:
        return any(tuple(call[: len(prefix)]) == prefix for call in self.calls)


def parse_openssl_conf(text: str) -> dict[str, dict[str, str]]:
    """Parse an OpenSSL config into {section: {key: value}}."""
    parser = configparser.ConfigParser(interpolation=None, comment_prefixes=("#",))
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    parser.SECTCRE = re.compile(r"\[\s*(?P<header>[^]]+?)\s*\]")
    parser.read_string(text)
    return {section: dict(parser[section]) for section in parser.sections()}


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Return an empty directory standing in for the host temp dir."""
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def devcert_config(work_dir: Path) -> DevCertConfig:
    """Return config writing working files under work_dir."""
    return DevCertConfig(temp_dir=work_dir)


@pytest.fixture
def registry(work_dir: Path) -> TempFileRegistry:
    """Return a registry rooted in work_dir."""
    return TempFileRegistry(work_dir)


@pytest.fixture
def config_builder(registry: TempFileRegistry, devcert_config: DevCertConfig) -> OpenSSLConfigBuilder:
    """Return an OpenSSL config builder sharing the test registry."""
    return OpenSSLConfigBuilder(registry, devcert_config)


@pytest.fixture(scope="session")
def issuance_cache() -> IssuanceCache:
    """Return one cache for the whole session so RSA keys are generated once."""
    return IssuanceCache()


@pytest.fixture
def issuer(
    registry: TempFileRegistry,
    devcert_config: DevCertConfig,
    issuance_cache: IssuanceCache,
) -> CertificateIssuer:
    """Return an issuer backed by the session cache."""
    return CertificateIssuer(registry, devcert_config, issuance_cache)


@pytest.fixture
def operator() -> ScriptedOperator:
    """Return an operator that acknowledges every prompt."""
    return ScriptedOperator()


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Return a runner on which every command fails."""
    return FakeRunner()


@pytest.fixture
def make_runner() -> Callable[..., FakeRunner]:
    """Return a factory for runners with canned responses."""
    return FakeRunner


@pytest.fixture(scope="session")
def root_key() -> RSAPrivateKey:
    """Generate RSA private key for a test root CA."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def root_cert(root_key: RSAPrivateKey) -> x509.Certificate:
    """Build a self-signed root CA for foo.zoo with cryptography."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "foo.zoo")])
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(root_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(root_key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def leaf_key() -> RSAPrivateKey:
    """Generate RSA private key for a test leaf certificate."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def leaf_cert(
    leaf_key: RSAPrivateKey,
    root_cert: x509.Certificate,
    root_key: RSAPrivateKey,
) -> x509.Certificate:
    """Build a foo.zoo server certificate signed by root_cert."""
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "foo.zoo")]))
        .issuer_name(root_cert.subject)
        .public_key(leaf_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(
            x509.SubjectAlternativeName(
                [
                    x509.DNSName("foo.zoo"),
                    x509.DNSName("localhost"),
                    x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
                ]
            ),
            critical=False,
        )
        .sign(root_key, hashes.SHA256())
    )


@pytest.fixture
def launcher() -> AsyncMock:
    """Return a browser launcher whose launch process has already exited."""
    process = MagicMock()
    process.pid = 4242
    process.wait = AsyncMock(return_value=0)
    return AsyncMock(return_value=process)
