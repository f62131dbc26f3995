"""Installation of the root CA into NSS certificate databases (Firefox, Chrome on Linux)."""

import asyncio
import glob
import sys
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path

from .errors import CertutilUnavailableError, CommandError
from .logging_config import LOGGER
from .operator import Operator
from .process import ProcessResult, command_exists, run_command

LEGACY_DB_MARKER = "cert8.db"
MODERN_DB_MARKER = "cert9.db"
TRUST_FLAGS = "C,,"

Runner = Callable[[Sequence[str]], Awaitable[ProcessResult]]


class NSSInstaller:
    """Finds NSS databases under a glob and adds a trusted CA to each with certutil."""

    def __init__(
        self,
        operator: Operator,
        browser_process_name: str = "firefox",
        platform: str | None = None,
        runner: Runner = run_command,
        which: Callable[[str], bool] = command_exists,
    ) -> None:
        """Initialize installer.

        Args:
            operator: Asked to close the browser when it holds the database open
            browser_process_name: Substring searched for in the process list
            platform: ``sys.platform`` value to act as, defaults to the running one
            runner: Coroutine function executing an argument vector
            which: Predicate telling whether a program is on PATH
        """
        self.operator = operator
        self.browser_process_name = browser_process_name
        self.platform = platform or sys.platform
        self.runner = runner
        self.which = which

    async def lookup_or_install_certutil(self) -> str | None:
        """Return the path to NSS certutil, installing it with the package manager if needed.

        Returns:
            Executable path, or None when this platform has no supported install route

        Raises:
            CommandError: If the package manager fails
        """
        if self.platform == "darwin":
            if not self.which("brew"):
                return None
            try:
                prefix = await self._brew_nss_prefix()
            except CommandError:
                LOGGER.info("Installing nss with Homebrew to get certutil")
                await self.runner(["brew", "install", "nss"])
                prefix = await self._brew_nss_prefix()
            return str(Path(prefix) / "bin" / "certutil")

        if self.platform.startswith("linux"):
            if not self.which("certutil"):
                LOGGER.info("Installing libnss3-tools to get certutil")
                await self.runner(["sudo", "apt", "install", "-y", "libnss3-tools"])
            result = await self.runner(["which", "certutil"])
            return result.stdout.strip() or None

        return None

    async def _brew_nss_prefix(self) -> str:
        result = await self.runner(["brew", "--prefix", "nss"])
        return result.stdout.strip()

    async def browser_is_running(self) -> bool:
        result = await self.runner(["ps", "aux"])
        return self.browser_process_name in result.stdout

    async def install(
        self,
        common_name: str,
        cert_path: Path,
        dir_glob: str,
        check_running_browser: bool,
    ) -> list[Path]:
        """Add ``cert_path`` as a trusted CA to every NSS database matched by ``dir_glob``.

        Args:
            common_name: Nickname for the certificate inside the database
            cert_path: PEM root certificate
            dir_glob: Glob of candidate profile directories
            check_running_browser: Ask the operator to close the browser before writing

        Returns:
            Directories whose database now holds the certificate

        Raises:
            CertutilUnavailableError: If certutil cannot be found or installed
        """
        try:
            certutil = await self.lookup_or_install_certutil()
        except CommandError as e:
            raise CertutilUnavailableError(f"certutil not available: {e}") from e
        if not certutil:
            raise CertutilUnavailableError("certutil not available")

        # The browser keeps its NSS database in memory and rewrites it on exit
        if check_running_browser and await self.browser_is_running():
            self.operator.notify(
                f"Please close {self.browser_process_name} before continuing (Press <Enter> when ready)"
            )
            await self.operator.acknowledge()

        candidates = [Path(p) for p in sorted(glob.glob(dir_glob))]
        results = await asyncio.gather(
            *(self._install_into(certutil, directory, common_name, cert_path) for directory in candidates),
            return_exceptions=True,
        )

        installed = []
        for directory, result in zip(candidates, results):
            if isinstance(result, BaseException):
                LOGGER.warning("Could not add certificate to NSS database %s: %s", directory, result)
            elif result:
                installed.append(directory)
        return installed

    async def _install_into(
        self,
        certutil: str,
        directory: Path,
        common_name: str,
        cert_path: Path,
    ) -> bool:
        if (directory / LEGACY_DB_MARKER).exists():
            database = str(directory)
        elif (directory / MODERN_DB_MARKER).exists():
            database = f"sql:{directory}"
        else:
            return False

        await self.runner(
            [certutil, "-A", "-d", database, "-t", TRUST_FLAGS, "-i", str(cert_path), "-n", common_name]
        )
        LOGGER.info("Added %s to NSS database %s", common_name, directory)
        return True
