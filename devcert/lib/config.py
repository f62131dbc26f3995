"""Configuration dataclasses and platform constants for devcert."""

import re
from dataclasses import dataclass
from pathlib import Path

from .errors import InvalidCommonNameError

# Common names are limited to 64 characters by X.509 (ub-common-name)
COMMON_NAME_PATTERN = re.compile(r"^(.|\.){1,64}$")
PATH_SEPARATORS = ("/", "\\")

DEFAULT_ALT_NAMES: tuple[str, ...] = (
    "localhost",
    "localhost.localdomain",
    "lvh.me",
    "*.lvh.me",
    "[::1]",
)
DEFAULT_IP_ADDRESSES: tuple[str, ...] = ("127.0.0.1", "fe80::1")

MAC_SYSTEM_KEYCHAIN = "/Library/Keychains/System.keychain"
MAC_FIREFOX_BINARY = "/Applications/Firefox.app/Contents/MacOS/firefox"
LINUX_SSL_CERTS_DIR = "/etc/ssl/certs"
LINUX_CA_CERTIFICATES_DIR = "/usr/local/share/ca-certificates"
LINUX_FIREFOX_BINARY = "firefox"
WINDOWS_FIREFOX_COMMAND = "start firefox"

CERT_MIME_TYPE = "application/x-x509-ca-cert"


@dataclass
class DevCertConfig:
    """Issuance settings. Defaults match what browsers accept for local development."""

    key_size: int = 2048
    validity_days: int = 7000
    digest: str = "sha256"
    openssl_binary: str = "openssl"
    temp_dir: Path | None = None
    alt_names: tuple[str, ...] = DEFAULT_ALT_NAMES
    ip_addresses: tuple[str, ...] = DEFAULT_IP_ADDRESSES
    browser_process_name: str = "firefox"


@dataclass
class PlatformPaths:
    """Per-user locations of browser NSS databases."""

    mac_firefox_profiles: str
    linux_firefox_profiles: str
    linux_user_nssdb: str


def platform_paths(home: Path | None = None) -> PlatformPaths:
    """Build NSS glob patterns rooted at the given home directory.

    Args:
        home: Home directory, defaults to the current user's

    Returns:
        PlatformPaths with glob patterns as strings
    """
    home = home or Path.home()
    return PlatformPaths(
        mac_firefox_profiles=str(home / "Library/Application Support/Firefox/Profiles/*"),
        linux_firefox_profiles=str(home / ".mozilla/firefox/*"),
        linux_user_nssdb=str(home / ".pki/nssdb"),
    )


def validate_common_name(common_name: str) -> str:
    """Return the common name unchanged when it is acceptable, raise otherwise.

    The name also becomes a file name in root-owned trust store directories, so
    path separators are rejected.
    """
    if not COMMON_NAME_PATTERN.fullmatch(common_name) or any(sep in common_name for sep in PATH_SEPARATORS):
        raise InvalidCommonNameError(f"Invalid Common Name {common_name!r}.")
    return common_name
