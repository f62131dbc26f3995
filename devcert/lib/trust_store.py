"""Installs the root CA into the operating system and browser trust stores.

Each platform gets a short pipeline of steps. Every fallible step produces a
StepOutcome; the pipeline reads those outcomes to decide whether to fall back to
the manual browser flow. Only an unsupported platform is fatal.
"""

import sys
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

from .config import (
    LINUX_CA_CERTIFICATES_DIR,
    LINUX_FIREFOX_BINARY,
    LINUX_SSL_CERTS_DIR,
    MAC_FIREFOX_BINARY,
    MAC_SYSTEM_KEYCHAIN,
    WINDOWS_FIREFOX_COMMAND,
    PlatformPaths,
    platform_paths,
)
from .errors import DevCertError, UnsupportedPlatformError
from .fallback import FallbackFlow
from .logging_config import LOGGER
from .models import InstallReport, StepOutcome
from .nss import NSSInstaller
from .process import ProcessResult, run_command

Runner = Callable[[Sequence[str]], Awaitable[ProcessResult]]


async def attempt(report: InstallReport, step: str, action: Awaitable[object]) -> StepOutcome:
    """Await ``action`` and record whether it worked.

    Only failures devcert knows how to recover from (command and toolkit errors,
    OS errors) become failed outcomes; anything else propagates.
    """
    try:
        result = await action
    except (DevCertError, OSError) as e:
        LOGGER.warning("Trust store step %s failed: %s", step, e)
        return report.record(StepOutcome(step=step, succeeded=False, detail=str(e)))
    detail = ", ".join(str(p) for p in result) if isinstance(result, list) else ""
    return report.record(StepOutcome(step=step, succeeded=True, detail=detail))


class TrustStoreInstaller:
    """Platform dispatch for trusting the root CA."""

    def __init__(
        self,
        nss: NSSInstaller,
        fallback: FallbackFlow,
        platform: str | None = None,
        paths: PlatformPaths | None = None,
        runner: Runner = run_command,
    ) -> None:
        self.nss = nss
        self.fallback = fallback
        self.platform = platform or sys.platform
        self.paths = paths or platform_paths()
        self.runner = runner

    async def install(self, common_name: str, cert_path: Path) -> InstallReport:
        """Trust ``cert_path`` everywhere reachable on this platform.

        Args:
            common_name: CN of the root, used for file names and NSS nicknames
            cert_path: PEM root certificate

        Returns:
            InstallReport listing every attempted step

        Raises:
            UnsupportedPlatformError: If the platform has no install strategy
        """
        report = InstallReport(platform=self.platform)
        if self.platform == "darwin":
            await self._install_mac(report, common_name, cert_path)
        elif self.platform.startswith("linux"):
            await self._install_linux(report, common_name, cert_path)
        elif self.platform == "win32":
            await self._install_windows(report, cert_path)
        else:
            raise UnsupportedPlatformError(
                f"Unable to automatically add a root certificate for {self.platform} platform."
            )

        LOGGER.info(
            "Trust store installation finished on %s: %d steps, %d failed, fallback=%s",
            self.platform,
            len(report.steps),
            len(report.failed_steps),
            report.fell_back,
        )
        return report

    async def _install_mac(self, report: InstallReport, common_name: str, cert_path: Path) -> None:
        # Safari, Chrome and system tools read the system keychain
        keychain = await attempt(
            report,
            "system-keychain",
            self.runner(
                [
                    "sudo", "security", "add-trusted-cert",
                    "-d", "-r", "trustRoot",
                    "-k", MAC_SYSTEM_KEYCHAIN,
                    "-p", "ssl", "-p", "basic",
                    str(cert_path),
                ]
            ),
        )
        firefox = await attempt(
            report,
            "firefox-nss",
            self.nss.install(common_name, cert_path, self.paths.mac_firefox_profiles, True),
        )
        if not (keychain.succeeded and firefox.succeeded):
            await self._fall_back(report, cert_path, MAC_FIREFOX_BINARY)

    async def _install_linux(self, report: InstallReport, common_name: str, cert_path: Path) -> None:
        ssl_certs = await attempt(
            report,
            "system-ssl-certs",
            self.runner(["sudo", "cp", str(cert_path), f"{LINUX_SSL_CERTS_DIR}/{common_name}.pem"]),
        )
        copied = await attempt(
            report,
            "system-ca-certificates",
            self.runner(["sudo", "cp", str(cert_path), f"{LINUX_CA_CERTIFICATES_DIR}/{common_name}.crt"]),
        )
        if copied.succeeded:
            await attempt(report, "update-ca-certificates", self.runner(["sudo", "update-ca-certificates"]))

        firefox = await attempt(
            report,
            "firefox-nss",
            self.nss.install(common_name, cert_path, self.paths.linux_firefox_profiles, True),
        )
        if not (ssl_certs.succeeded and copied.succeeded and firefox.succeeded):
            await self._fall_back(report, cert_path, LINUX_FIREFOX_BINARY)

        # Chrome reads the per-user NSS database and has no import prompt to fall back to
        await attempt(
            report,
            "user-nssdb",
            self.nss.install(common_name, cert_path, self.paths.linux_user_nssdb, False),
        )

    async def _install_windows(self, report: InstallReport, cert_path: Path) -> None:
        await attempt(
            report,
            "windows-root-store",
            self.runner(["certutil", "-addstore", "-user", "root", str(cert_path)]),
        )
        # NSS certutil is not practical to install on Windows, Firefox always goes manual
        await self._fall_back(report, cert_path, WINDOWS_FIREFOX_COMMAND)

    async def _fall_back(self, report: InstallReport, cert_path: Path, browser_command: str) -> None:
        if report.fell_back:
            return
        report.fell_back = True
        await self.fallback.run(cert_path, browser_command)
