"""Root CA and leaf certificate issuance via openssl."""

import asyncio
import os
import shutil
from pathlib import Path

from .ca_cache import IssuanceCache
from .config import DevCertConfig
from .logging_config import LOGGER
from .models import CertificateAuthorityRecord, CertificateFilePair, SigningConfiguration
from .openssl import OpenSSL
from .tmp_files import TempFileRegistry

PRIVATE_KEY_MODE = 0o400


def _write_private_file(path: Path, data: bytes) -> None:
    """Create ``path`` readable by the owner only, then write ``data``."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    os.chmod(path, PRIVATE_KEY_MODE)


class CertificateIssuer:
    """Issues the root CA and leaf certificates for a common name.

    Key material is generated once per cache and replayed into fresh working
    files, so repeat issuance within a process does not pay for key generation.
    """

    def __init__(
        self,
        registry: TempFileRegistry,
        config: DevCertConfig,
        cache: IssuanceCache | None = None,
        openssl: OpenSSL | None = None,
    ) -> None:
        """Initialize issuer.

        Args:
            registry: Owner of every file the issuer writes
            config: Key size, digest and validity settings
            cache: Root CA cache, shared across runs to avoid re-trusting a new root
            openssl: Toolkit driver, built from config when omitted
        """
        self.registry = registry
        self.config = config
        self.cache = cache if cache is not None else IssuanceCache()
        self.openssl = openssl or OpenSSL(registry, config.openssl_binary)

    async def generate_key(self) -> Path:
        """Write a private key to a fresh working file.

        Returns:
            Path of the key file, mode 0o400
        """
        key_path = self.registry.allocate("key")
        cached = self.cache.key_pem
        if cached is not None:
            await asyncio.to_thread(_write_private_file, key_path, cached)
            return key_path

        await self.openssl.run("genrsa", "-out", key_path, str(self.config.key_size), output=key_path)
        key_pem = await asyncio.to_thread(key_path.read_bytes)
        await asyncio.to_thread(os.chmod, key_path, PRIVATE_KEY_MODE)
        self.cache.store_key(key_pem)
        LOGGER.debug("Generated %d-bit private key", self.config.key_size)
        return key_path

    async def generate_root_certificate(
        self,
        common_name: str,
        signing_config: SigningConfiguration,
    ) -> CertificateFilePair:
        """Produce the self-signed root CA for ``common_name``.

        A cached CA for the same common name is restored without invoking openssl.

        Args:
            common_name: Subject and issuer CN of the root
            signing_config: Policy file carrying the ``v3_ca`` extensions

        Returns:
            CertificateFilePair of the root key and certificate

        Raises:
            ToolkitError: If openssl fails to self-sign
        """
        cert_path = self.registry.allocate(f"{common_name}.crt")
        record = self.cache.lookup(common_name)

        if record is not None:
            key_path = self.registry.allocate("key")
            await asyncio.gather(
                asyncio.to_thread(_write_private_file, key_path, record.key_pem),
                asyncio.to_thread(cert_path.write_bytes, record.cert_pem),
            )
            LOGGER.info("Reusing cached root CA for %s", common_name)
            return CertificateFilePair(key_path=key_path, cert_path=cert_path)

        key_path = await self.generate_key()
        await self.openssl.run(
            "req",
            "-config", signing_config.config_path,
            "-key", key_path,
            "-out", cert_path,
            "-new",
            "-subj", f"/CN={common_name}",
            "-x509",
            "-days", str(self.config.validity_days),
            "-extensions", "v3_ca",
            output=cert_path,
        )
        key_pem, cert_pem = await asyncio.gather(
            asyncio.to_thread(key_path.read_bytes),
            asyncio.to_thread(cert_path.read_bytes),
        )
        self.cache.store(
            CertificateAuthorityRecord(common_name=common_name, key_pem=key_pem, cert_pem=cert_pem)
        )
        LOGGER.info("Generated root CA for %s", common_name)
        return CertificateFilePair(key_path=key_path, cert_path=cert_path)

    async def generate_signed_certificate(
        self,
        common_name: str,
        signing_config: SigningConfiguration,
        ca: CertificateFilePair,
    ) -> CertificateFilePair:
        """Issue a server certificate for ``common_name`` signed by ``ca``.

        Args:
            common_name: Subject CN of the leaf
            signing_config: Policy file with the ``server_cert`` extensions and ledger
            ca: Root key and certificate returned by generate_root_certificate

        Returns:
            CertificateFilePair of the leaf key and certificate

        Raises:
            ToolkitError: If the signing request or signing step fails
        """
        key_path = await self.generate_key()
        csr_path = self.registry.allocate(f"{common_name}.csr")
        await self.openssl.run(
            "req",
            "-config", signing_config.config_path,
            "-subj", f"/CN={common_name}",
            "-key", key_path,
            "-out", csr_path,
            "-new",
            output=csr_path,
        )

        cert_path = self.registry.allocate(f"{common_name}.crt")
        # openssl ca insists on an output directory even with -out set
        out_dir = self.registry.allocate("certs")
        await asyncio.to_thread(out_dir.mkdir, parents=True, exist_ok=True)
        try:
            await self.openssl.run(
                "ca",
                "-config", signing_config.config_path,
                "-in", csr_path,
                "-out", cert_path,
                "-outdir", out_dir,
                "-keyfile", ca.key_path,
                "-cert", ca.cert_path,
                "-notext",
                "-md", self.config.digest,
                "-days", str(self.config.validity_days),
                "-batch",
                "-extensions", "server_cert",
                output=cert_path,
            )
        finally:
            await asyncio.to_thread(shutil.rmtree, out_dir, True)

        LOGGER.info("Issued certificate for %s", common_name)
        return CertificateFilePair(key_path=key_path, cert_path=cert_path)
