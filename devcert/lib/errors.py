"""Exception hierarchy for devcert operations."""


class DevCertError(Exception):
    """Base class for every failure raised by devcert."""


class InvalidCommonNameError(DevCertError, ValueError):
    """Requested common name is empty, too long, or otherwise malformed."""


class MissingDependencyError(DevCertError):
    """A required external program is not installed on this host."""


class UnsupportedPlatformError(DevCertError):
    """No trust store strategy exists for the running platform."""


class CommandError(DevCertError):
    """External command exited non-zero or could not be started.

    Attributes:
        args_: Argument vector that was executed
        returncode: Exit status, or None when the program could not be spawned
        stderr: Captured diagnostic output
    """

    def __init__(
        self,
        args_: list[str],
        returncode: int | None,
        stderr: str = "",
    ) -> None:
        self.args_ = args_
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or "no diagnostic output"
        super().__init__(f"command {' '.join(args_)!r} failed (rc={returncode}): {detail}")


class ToolkitError(DevCertError):
    """The openssl toolkit refused or failed an issuance step."""

    def __init__(self, command: str, diagnostic: str) -> None:
        self.command = command
        self.diagnostic = diagnostic
        super().__init__(f"openssl {command} failed: {diagnostic.strip()}")


class CertutilUnavailableError(DevCertError):
    """NSS certutil could not be located or installed."""


class VerificationError(DevCertError):
    """Issued certificate bundle does not form a valid chain."""
