"""Tests for NSS database discovery and installation."""

from collections.abc import Callable
from pathlib import Path

import pytest
from conftest import FakeRunner, ScriptedOperator

from devcert.lib.errors import CertutilUnavailableError, CommandError
from devcert.lib.nss import NSSInstaller

CERTUTIL = "/usr/bin/certutil"


@pytest.fixture
def profiles(tmp_path: Path) -> Path:
    """Profile root with a legacy, a modern and an empty profile directory."""
    root = tmp_path / "profiles"
    for name, marker in (("legacy", "cert8.db"), ("modern", "cert9.db"), ("empty", None)):
        directory = root / name
        directory.mkdir(parents=True)
        if marker:
            (directory / marker).write_bytes(b"")
    return root


@pytest.fixture
def linux_runner(make_runner: Callable[..., FakeRunner]) -> FakeRunner:
    """Runner where certutil is installed and every certutil call succeeds."""
    return make_runner({("which", "certutil"): f"{CERTUTIL}\n", (CERTUTIL,): "", ("ps", "aux"): "bash\n"})


def _installer(operator: ScriptedOperator, runner: FakeRunner, platform: str = "linux", has: tuple[str, ...] = ("certutil",)) -> NSSInstaller:
    return NSSInstaller(operator, platform=platform, runner=runner, which=lambda name: name in has)


class TestLookupOrInstallCertutil:
    """Tests for NSSInstaller.lookup_or_install_certutil."""

    async def test_linux_present(self, operator: ScriptedOperator, linux_runner: FakeRunner) -> None:
        assert await _installer(operator, linux_runner).lookup_or_install_certutil() == CERTUTIL
        assert not linux_runner.called_with("sudo", "apt")

    async def test_linux_missing_installs_package(
        self, operator: ScriptedOperator, make_runner: Callable[..., FakeRunner]
    ) -> None:
        runner = make_runner({("sudo", "apt", "install"): "", ("which", "certutil"): f"{CERTUTIL}\n"})

        path = await _installer(operator, runner, has=()).lookup_or_install_certutil()

        assert path == CERTUTIL
        assert runner.called_with("sudo", "apt", "install", "-y", "libnss3-tools")

    async def test_linux_install_failure_propagates(self, operator: ScriptedOperator, fake_runner: FakeRunner) -> None:
        with pytest.raises(CommandError):
            await _installer(operator, fake_runner, has=()).lookup_or_install_certutil()

    async def test_mac_uses_brew_prefix(self, operator: ScriptedOperator, make_runner: Callable[..., FakeRunner]) -> None:
        runner = make_runner({("brew", "--prefix", "nss"): "/opt/homebrew/opt/nss\n"})

        path = await _installer(operator, runner, platform="darwin", has=("brew",)).lookup_or_install_certutil()

        assert path == str(Path("/opt/homebrew/opt/nss") / "bin" / "certutil")
        assert not runner.called_with("brew", "install")

    async def test_mac_installs_nss_when_prefix_lookup_fails(
        self, operator: ScriptedOperator, make_runner: Callable[..., FakeRunner]
    ) -> None:
        """A failing prefix lookup triggers brew install, then a second lookup."""
        runner = make_runner(
            {
                ("brew", "--prefix", "nss"): [
                    CommandError(["brew"], 1, "Error: No available formula"),
                    "/usr/local/opt/nss\n",
                ],
                ("brew", "install", "nss"): "",
            }
        )

        path = await _installer(operator, runner, platform="darwin", has=("brew",)).lookup_or_install_certutil()

        assert path == str(Path("/usr/local/opt/nss") / "bin" / "certutil")
        assert runner.called_with("brew", "install", "nss")
        assert [call[:2] for call in runner.calls].count(["brew", "--prefix"]) == 2

    async def test_mac_without_brew(self, operator: ScriptedOperator, fake_runner: FakeRunner) -> None:
        assert await _installer(operator, fake_runner, platform="darwin", has=()).lookup_or_install_certutil() is None

    async def test_other_platform(self, operator: ScriptedOperator, fake_runner: FakeRunner) -> None:
        assert await _installer(operator, fake_runner, platform="win32").lookup_or_install_certutil() is None
        assert fake_runner.calls == []


class TestInstall:
    """Tests for NSSInstaller.install."""

    async def test_legacy_and_modern_databases(
        self, operator: ScriptedOperator, linux_runner: FakeRunner, profiles: Path, tmp_path: Path
    ) -> None:
        """cert8.db gets a plain -d, cert9.db gets the sql: prefix, others are skipped."""
        cert = tmp_path / "root.crt"

        installed = await _installer(operator, linux_runner).install("foo.zoo", cert, str(profiles / "*"), False)

        assert sorted(installed) == [profiles / "legacy", profiles / "modern"]
        certutil_calls = [call for call in linux_runner.calls if call[0] == CERTUTIL]
        assert sorted(certutil_calls) == sorted(
            [
                [CERTUTIL, "-A", "-d", str(profiles / "legacy"), "-t", "C,,", "-i", str(cert), "-n", "foo.zoo"],
                [CERTUTIL, "-A", "-d", f"sql:{profiles / 'modern'}", "-t", "C,,", "-i", str(cert), "-n", "foo.zoo"],
            ]
        )

    async def test_directory_without_markers_is_skipped(
        self, operator: ScriptedOperator, linux_runner: FakeRunner, profiles: Path, tmp_path: Path
    ) -> None:
        installed = await _installer(operator, linux_runner).install("foo.zoo", tmp_path / "root.crt", str(profiles / "empty"), False)

        assert installed == []
        assert not linux_runner.called_with(CERTUTIL)

    async def test_unmatched_glob_is_not_an_error(
        self, operator: ScriptedOperator, linux_runner: FakeRunner, tmp_path: Path
    ) -> None:
        installed = await _installer(operator, linux_runner).install("foo.zoo", tmp_path / "root.crt", str(tmp_path / "nope/*"), False)

        assert installed == []

    async def test_one_failing_database_does_not_block_others(
        self,
        operator: ScriptedOperator,
        make_runner: Callable[..., FakeRunner],
        profiles: Path,
        tmp_path: Path,
    ) -> None:
        """A certutil failure on the legacy profile still lets the modern one succeed."""
        runner = make_runner(
            {
                ("which", "certutil"): CERTUTIL,
                (CERTUTIL, "-A", "-d", str(profiles / "legacy")): CommandError([CERTUTIL], 255, "SEC_ERROR_READ_ONLY"),
                (CERTUTIL,): "",
            }
        )

        installed = await _installer(operator, runner).install("foo.zoo", tmp_path / "root.crt", str(profiles / "*"), False)

        assert installed == [profiles / "modern"]

    async def test_missing_certutil_raises(self, operator: ScriptedOperator, fake_runner: FakeRunner, profiles: Path, tmp_path: Path) -> None:
        with pytest.raises(CertutilUnavailableError):
            await _installer(operator, fake_runner, has=()).install("foo.zoo", tmp_path / "root.crt", str(profiles / "*"), False)

    async def test_unsupported_platform_raises(self, operator: ScriptedOperator, fake_runner: FakeRunner, profiles: Path, tmp_path: Path) -> None:
        with pytest.raises(CertutilUnavailableError):
            await _installer(operator, fake_runner, platform="win32").install("foo.zoo", tmp_path / "root.crt", str(profiles / "*"), False)

    async def test_running_browser_waits_for_operator(
        self, operator: ScriptedOperator, make_runner: Callable[..., FakeRunner], profiles: Path, tmp_path: Path
    ) -> None:
        runner = make_runner(
            {("which", "certutil"): CERTUTIL, ("ps", "aux"): "me 123 /usr/lib/firefox/firefox\n", (CERTUTIL,): ""}
        )

        await _installer(operator, runner).install("foo.zoo", tmp_path / "root.crt", str(profiles / "*"), True)

        assert operator.acknowledgments == 1
        assert "close firefox" in operator.messages[0]

    async def test_browser_not_running_does_not_prompt(
        self, operator: ScriptedOperator, linux_runner: FakeRunner, profiles: Path, tmp_path: Path
    ) -> None:
        await _installer(operator, linux_runner).install("foo.zoo", tmp_path / "root.crt", str(profiles / "*"), True)

        assert operator.acknowledgments == 0
        assert linux_runner.called_with("ps", "aux")

    async def test_browser_check_skipped_when_not_requested(
        self, operator: ScriptedOperator, linux_runner: FakeRunner, profiles: Path, tmp_path: Path
    ) -> None:
        await _installer(operator, linux_runner).install("foo.zoo", tmp_path / "root.crt", str(profiles / "*"), False)

        assert not linux_runner.called_with("ps")
