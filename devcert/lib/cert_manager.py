"""Orchestrates root CA, trust store installation and leaf issuance."""

import asyncio
from pathlib import Path

from .ca_cache import IssuanceCache
from .cert_utils import validate_bundle
from .config import DevCertConfig, validate_common_name
from .errors import MissingDependencyError
from .fallback import FallbackFlow
from .issuer import CertificateIssuer
from .logging_config import LOGGER
from .models import DevCertificate, InstallReport
from .nss import NSSInstaller
from .openssl_config import OpenSSLConfigBuilder
from .operator import Operator, TerminalOperator
from .process import command_exists
from .tmp_files import TempFileRegistry
from .trust_store import TrustStoreInstaller


class DevCertManager:
    """Produces trusted development certificates.

    One manager handles one request at a time. The issuance cache outlives each
    request so the same root CA is reused for the life of the manager.
    """

    def __init__(
        self,
        config: DevCertConfig | None = None,
        registry: TempFileRegistry | None = None,
        cache: IssuanceCache | None = None,
        installer: TrustStoreInstaller | None = None,
        operator: Operator | None = None,
    ) -> None:
        """Initialize manager.

        Args:
            config: Issuance settings, defaults to DevCertConfig()
            registry: Owner of all working files
            cache: Root CA cache
            installer: Trust store installer, built for the running platform when omitted
            operator: Who answers prompts, defaults to the terminal
        """
        self.config = config or DevCertConfig()
        self.registry = registry or TempFileRegistry(self.config.temp_dir)
        self.cache = cache if cache is not None else IssuanceCache()
        self.operator = operator or TerminalOperator()
        self.config_builder = OpenSSLConfigBuilder(self.registry, self.config)
        self.issuer = CertificateIssuer(self.registry, self.config, self.cache)
        self.installer = installer or TrustStoreInstaller(
            nss=NSSInstaller(self.operator, self.config.browser_process_name),
            fallback=FallbackFlow(self.operator),
        )
        self.last_report: InstallReport | None = None

    async def generate(self, common_name: str) -> DevCertificate:
        """Issue a certificate for ``common_name`` signed by a locally trusted root.

        Working files are removed before returning, whether or not issuance succeeded.

        Args:
            common_name: Domain the certificate is for

        Returns:
            DevCertificate with PEM key, certificate and root CA

        Raises:
            MissingDependencyError: If openssl is not on PATH
            InvalidCommonNameError: If common_name is malformed
            ToolkitError: If openssl fails at any step
            UnsupportedPlatformError: If the platform has no trust store strategy
            VerificationError: If the issued chain does not verify
        """
        if not command_exists(self.config.openssl_binary):
            raise MissingDependencyError(
                "Unable to find openssl - make sure it is installed and available in your PATH"
            )
        validate_common_name(common_name)

        try:
            signing_config = await self.config_builder.build(common_name)
            ca = await self.issuer.generate_root_certificate(common_name, signing_config)
            self.last_report = await self.installer.install(common_name, ca.cert_path)
            leaf = await self.issuer.generate_signed_certificate(common_name, signing_config, ca)

            key, cert, ca_text = await asyncio.gather(
                *(_read_text(path) for path in (leaf.key_path, leaf.cert_path, ca.cert_path))
            )
            bundle = DevCertificate(common_name=common_name, key=key, cert=cert, ca=ca_text)
            validate_bundle(bundle)
            LOGGER.info("Development certificate ready for %s", common_name)
            return bundle
        finally:
            # Root key and certificate go too, they live on in the cache and trust stores
            await self.registry.clear()
            self.config_builder.forget()


async def _read_text(path: Path) -> str:
    return await asyncio.to_thread(path.read_text, encoding="utf-8")
