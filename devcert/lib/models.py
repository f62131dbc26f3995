"""Records passed between devcert components."""

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class EphemeralFile:
    """A path handed out by the temp file registry."""

    name: str
    path: Path


@dataclass(frozen=True)
class SigningConfiguration:
    """OpenSSL policy file plus the bookkeeping files it points at.

    The ledger (``database_path``) and serial seed (``serial_path``) are rewritten
    by ``openssl ca`` on every signing operation.
    """

    common_name: str
    config_path: Path
    database_path: Path
    serial_path: Path


@dataclass(frozen=True)
class CertificateAuthorityRecord:
    """Root CA material cached for the lifetime of an issuer."""

    common_name: str
    key_pem: bytes
    cert_pem: bytes


@dataclass(frozen=True)
class CertificateFilePair:
    """Key and certificate files produced by a single issuance.

    Both files are registry-owned and vanish on ``TempFileRegistry.clear()``.
    """

    key_path: Path
    cert_path: Path


@dataclass(frozen=True)
class DevCertificate:
    """PEM text returned to the caller once all working files are gone."""

    common_name: str
    key: str
    cert: str
    ca: str


@dataclass(frozen=True)
class StepOutcome:
    """Result of one fallible trust store step."""

    step: str
    succeeded: bool
    detail: str = ""


@dataclass
class InstallReport:
    """Everything the trust store installer attempted on this platform."""

    platform: str
    steps: list[StepOutcome] = field(default_factory=list)
    fell_back: bool = False

    def record(self, outcome: StepOutcome) -> StepOutcome:
        self.steps.append(outcome)
        return outcome

    @property
    def failed_steps(self) -> list[StepOutcome]:
        return [step for step in self.steps if not step.succeeded]
