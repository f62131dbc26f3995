"""OpenSSL policy file generation for the local CA."""

import asyncio
import re
import secrets
import sys
from pathlib import Path

from .config import DevCertConfig
from .logging_config import LOGGER
from .models import SigningConfiguration
from .tmp_files import TempFileRegistry

_NEWLINE = re.compile(r"\r\n|\r|\n")

OPENSSL_CONF_TEMPLATE = """\
[ ca ]
# `man ca`
default_ca = CA_default

[ CA_default ]
default_md        = {digest}
name_opt          = ca_default
cert_opt          = ca_default
policy            = policy_loose
unique_subject    = no
database          = {database_path}
serial            = {serial_path}
prompt            = no

[ policy_loose ]
# Only require minimal information for development certificates
commonName              = supplied

[ req ]
# Options for the `req` tool (`man req`).
default_bits        = {key_size}
distinguished_name  = req_distinguished_name
string_mask         = utf8only
default_md          = {digest}

# Extension to add when the -x509 option is used.
x509_extensions     = v3_ca

[ req_distinguished_name ]
commonName                      = Common Name

[ v3_ca ]
# Extensions for a typical CA (`man x509v3_config`).
subjectKeyIdentifier = hash
authorityKeyIdentifier = keyid:always,issuer
basicConstraints = critical, CA:true
keyUsage = critical, digitalSignature, cRLSign, keyCertSign

[ server_cert ]
# Extensions for server certificates (`man x509v3_config`).
basicConstraints = CA:FALSE
nsCertType = server
nsComment = "{common_name} Issued Certificate"
subjectKeyIdentifier = hash
authorityKeyIdentifier = keyid,issuer:always
keyUsage = critical, digitalSignature, keyEncipherment
extendedKeyUsage = serverAuth
subjectAltName = @alt_names

[ alt_names ]
{alt_names}
"""


def normalize_linebreaks(text: str, linebreak: str | None = None) -> str:
    """Rewrite every line ending to the host convention."""
    if linebreak is None:
        linebreak = "\r\n" if sys.platform == "win32" else "\n"
    return _NEWLINE.sub(linebreak, text)


def escape_config_path(path: Path) -> str:
    """Double backslashes, which OpenSSL config files treat as escapes."""
    return str(path).replace("\\", "\\\\")


def render_alt_names(common_name: str, alt_names: tuple[str, ...], ip_addresses: tuple[str, ...]) -> str:
    """Render the ``[ alt_names ]`` body with the common name as DNS.1."""
    lines = [f"DNS.{i} = {name}" for i, name in enumerate((common_name, *alt_names), start=1)]
    lines += [f"IP.{i} = {address}" for i, address in enumerate(ip_addresses, start=1)]
    return "\n".join(lines)


def render_openssl_conf(
    common_name: str,
    database_path: Path,
    serial_path: Path,
    config: DevCertConfig,
) -> str:
    """Render the OpenSSL config for one common name, newlines not yet normalized."""
    return OPENSSL_CONF_TEMPLATE.format(
        common_name=common_name,
        database_path=escape_config_path(database_path),
        serial_path=escape_config_path(serial_path),
        digest=config.digest,
        key_size=config.key_size,
        alt_names=render_alt_names(common_name, config.alt_names, config.ip_addresses),
    )


def generate_serial_seed() -> str:
    """Return a random 10 digit hex serial seed.

    ``openssl ca`` rejects serial files with an odd number of hex digits.
    """
    return f"{secrets.randbelow(16**10 - 16**9) + 16**9:x}"


class OpenSSLConfigBuilder:
    """Writes and caches one SigningConfiguration per common name."""

    def __init__(self, registry: TempFileRegistry, config: DevCertConfig) -> None:
        self.registry = registry
        self.config = config
        self._cache: dict[str, SigningConfiguration] = {}

    async def build(self, common_name: str) -> SigningConfiguration:
        """Return the signing configuration for ``common_name``, writing it on first use.

        Args:
            common_name: CN that the server certificate extension block will name

        Returns:
            SigningConfiguration whose files exist on disk

        Raises:
            OSError: If any of the three files cannot be written
        """
        cached = self._cache.get(common_name)
        if cached is not None:
            return cached

        config_path = self.registry.allocate("openssl.conf")
        database_path = self.registry.allocate("index.txt")
        serial_path = self.registry.allocate("serial")
        for sibling in (".attr", ".old", ".attr.old"):
            self.registry.track(database_path.with_name(database_path.name + sibling))
        self.registry.track(serial_path.with_name(serial_path.name + ".old"))

        conf_text = normalize_linebreaks(
            render_openssl_conf(common_name, database_path, serial_path, self.config)
        )
        await asyncio.gather(
            asyncio.to_thread(config_path.write_text, conf_text, encoding="utf-8", newline=""),
            asyncio.to_thread(database_path.write_text, "", encoding="utf-8"),
            asyncio.to_thread(serial_path.write_text, generate_serial_seed(), encoding="utf-8"),
        )

        signing_config = SigningConfiguration(
            common_name=common_name,
            config_path=config_path,
            database_path=database_path,
            serial_path=serial_path,
        )
        self._cache[common_name] = signing_config
        LOGGER.debug("Wrote OpenSSL config for %s to %s", common_name, config_path)
        return signing_config

    def forget(self) -> None:
        """Drop cached configurations once their files have been cleared."""
        self._cache.clear()
