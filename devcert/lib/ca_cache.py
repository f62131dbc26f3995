"""In-memory cache for root CA material."""

from .models import CertificateAuthorityRecord


class IssuanceCache:
    """Holds the reusable private key and at most one root CA record.

    Storing a record for another common name replaces the previous one, so the
    cache never serves a key from one CA next to the certificate of another.
    """

    def __init__(self) -> None:
        self._key_pem: bytes | None = None
        self._authority: CertificateAuthorityRecord | None = None

    @property
    def key_pem(self) -> bytes | None:
        return self._key_pem

    def store_key(self, key_pem: bytes) -> None:
        self._key_pem = key_pem

    def lookup(self, common_name: str) -> CertificateAuthorityRecord | None:
        """Return the cached CA when it was issued for exactly ``common_name``."""
        if self._authority is not None and self._authority.common_name == common_name:
            return self._authority
        return None

    def store(self, record: CertificateAuthorityRecord) -> None:
        self._authority = record

    def __len__(self) -> int:
        return 0 if self._authority is None else 1

    def clear(self) -> None:
        self._key_pem = None
        self._authority = None
