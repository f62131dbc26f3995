"""Driver for the openssl command line toolkit."""

from pathlib import Path

from .errors import CommandError, ToolkitError
from .logging_config import LOGGER
from .process import ProcessResult, run_command
from .tmp_files import TempFileRegistry


class OpenSSL:
    """Runs ``openssl`` subcommands with a registry-owned RANDFILE."""

    def __init__(self, registry: TempFileRegistry, binary: str = "openssl") -> None:
        self.registry = registry
        self.binary = binary
        self._rnd_file: Path | None = None
        self._rnd_session: str | None = None

    def _random_seed_file(self) -> Path:
        # A cleared registry starts a new session, the old seed path is gone with it
        if self._rnd_file is None or self._rnd_session != self.registry.prefix:
            self._rnd_file = self.registry.allocate("rnd")
            self._rnd_session = self.registry.prefix
        return self._rnd_file

    async def run(self, *args: str | Path, output: Path | None = None) -> ProcessResult:
        """Run ``openssl <args>``.

        A command counts as failed when it exits non-zero, or when it only wrote
        diagnostics: for file-producing commands ``output`` must exist and be
        non-empty, otherwise stdout must be non-empty whenever stderr is.

        Args:
            *args: Subcommand and its arguments
            output: File the subcommand is expected to produce

        Returns:
            ProcessResult of the finished command

        Raises:
            ToolkitError: On any of the failure conditions above
        """
        argv = [self.binary, *(str(arg) for arg in args)]
        subcommand = str(args[0]) if args else ""

        try:
            result = await run_command(argv, env={"RANDFILE": str(self._random_seed_file())})
        except CommandError as e:
            raise ToolkitError(subcommand, e.stderr or str(e)) from e

        if output is not None:
            if not output.exists() or output.stat().st_size == 0:
                raise ToolkitError(subcommand, result.stderr or f"no output written to {output}")
        elif not result.stdout and result.stderr:
            raise ToolkitError(subcommand, result.stderr)

        LOGGER.debug("openssl %s finished", subcommand)
        return result
