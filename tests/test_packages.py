"""Tests for packages module."""

from __future__ import annotations

import os
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from conftest import FakePackageManager

from obs_install.command import CmdResult
from obs_install.errors import CommandError, InstallError, PackageNotFoundError
from obs_install.packages import AptPackageManager, PackageInstaller


def _result(stdout: str = "", returncode: int = 0) -> CmdResult:
    return CmdResult(argv=[], returncode=returncode, stdout=stdout, stderr="")


@pytest.fixture
def runner() -> MagicMock:
    """Command runner that succeeds with no output."""
    return MagicMock(return_value=_result())


@pytest.fixture
def apt(runner: MagicMock) -> AptPackageManager:
    """Apt package manager using the mock runner."""
    return AptPackageManager(runner=runner)


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Create an empty cache directory."""
    cache = tmp_path / "cache"
    cache.mkdir()
    return cache


@pytest.fixture
def installer(package_manager: FakePackageManager, cache_dir: Path) -> PackageInstaller:
    """PackageInstaller over the recording package manager."""
    return PackageInstaller(manager=package_manager, cache_dir=cache_dir)


class TestAptPackageManager:
    """Tests for AptPackageManager command construction."""

    def test_update(self, apt: AptPackageManager, runner: MagicMock) -> None:
        apt.update()
        argv = runner.call_args.args[0]
        assert argv == ["apt-get", "-q=2", "-y", "update"]
        assert runner.call_args.kwargs["env"] == {"DEBIAN_FRONTEND": "noninteractive"}

    def test_add_repository_skips_refresh(self, apt: AptPackageManager, runner: MagicMock) -> None:
        apt.add_repository("ppa:example/obs")
        assert runner.call_args.args[0] == [
            "add-apt-repository", "-y", "--no-update", "ppa:example/obs"
        ]

    def test_download_runs_in_directory(
        self, apt: AptPackageManager, runner: MagicMock, tmp_path: Path
    ) -> None:
        apt.download_to_directory("obs-studio", tmp_path)
        assert runner.call_args.args[0][-2:] == ["download", "obs-studio"]
        assert runner.call_args.kwargs["cwd"] == tmp_path

    def test_install_by_name(self, apt: AptPackageManager, runner: MagicMock) -> None:
        apt.install_by_name(["libxss1", "libxtst6"])
        assert runner.call_args.args[0][-3:] == ["install", "libxss1", "libxtst6"]

    def test_install_by_path_uses_absolute_path(
        self, apt: AptPackageManager, runner: MagicMock, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        apt.install_by_path(Path("plugin.deb"))
        assert runner.call_args.args[0][-1] == str((tmp_path / "plugin.deb").resolve())

    def test_fix_broken(self, apt: AptPackageManager, runner: MagicMock) -> None:
        apt.fix_broken()
        assert runner.call_args.args[0][-2:] == ["--fix-broken", "install"]

    @pytest.mark.parametrize(("purge", "action"), [(False, "remove"), (True, "purge")])
    def test_remove(self, apt: AptPackageManager, runner: MagicMock, purge: bool, action: str) -> None:
        apt.remove("obs-websocket", purge=purge)
        assert runner.call_args.args[0][-3:] == ["--autoremove", action, "obs-websocket"]

    def test_status_installed(self, apt: AptPackageManager, runner: MagicMock) -> None:
        runner.return_value = _result("ii ")
        assert apt.status("obs-studio") == "ii"
        assert runner.call_args.kwargs["check"] is False

    def test_status_unknown_package(self, apt: AptPackageManager, runner: MagicMock) -> None:
        runner.return_value = _result("", returncode=1)
        assert apt.status("nope") is None

    def test_depends(self, apt: AptPackageManager, runner: MagicMock) -> None:
        runner.return_value = _result(
            "obs-studio\n"
            "  Depends: libobs0 (= 29.0.0-0obsproject1.jammy)\n"
            " |Depends: libqt6core6\n"
            "  Depends: libqt6gui6\n"
            "  PreDepends: dpkg\n"
            "  Recommends: obs-plugins\n"
            "  Conflicts: libqt5core5a\n"
        )

        assert apt.depends("obs-studio") == ["libobs0", "libqt6core6", "libqt6gui6", "dpkg"]
        assert runner.call_args.args[0] == ["apt-cache", "depends", "obs-studio"]
        assert runner.call_args.kwargs["check"] is False

    def test_depends_unknown_package(self, apt: AptPackageManager, runner: MagicMock) -> None:
        runner.return_value = _result("", returncode=100)
        assert apt.depends("obs-studio") == []


class TestPackageInstaller:
    """Tests for PackageInstaller class."""

    def test_create_defaults_to_apt(self, cache_dir: Path) -> None:
        installer = PackageInstaller.create(cache_dir)
        assert isinstance(installer.manager, AptPackageManager)
        assert installer.cache_dir == cache_dir

    def test_download_package_returns_deb(
        self, installer: PackageInstaller, cache_dir: Path
    ) -> None:
        deb = installer.download_package("obs-studio")
        assert deb == cache_dir / "obs-studio_1.0-1_amd64.deb"

    def test_download_package_prefers_newest(
        self, installer: PackageInstaller, cache_dir: Path
    ) -> None:
        old = cache_dir / "obs-studio_0.9-1_amd64.deb"
        old.write_bytes(b"old")
        past = time.time() - 3600
        os.utime(old, (past, past))

        deb = installer.download_package("obs-studio")

        assert deb.name == "obs-studio_1.0-1_amd64.deb"

    def test_download_package_ignores_prefix_matches(
        self, package_manager: FakePackageManager, cache_dir: Path
    ) -> None:
        """libobs0 must not pick up libobs0-dev files."""
        (cache_dir / "libobs0-dev_1.0_amd64.deb").write_bytes(b"")
        package_manager.download_to_directory = MagicMock()
        installer = PackageInstaller(manager=package_manager, cache_dir=cache_dir)

        with pytest.raises(PackageNotFoundError, match="libobs0"):
            installer.download_package("libobs0")

    def test_download_failure_raises_install_error(
        self, installer: PackageInstaller, package_manager: FakePackageManager
    ) -> None:
        package_manager.failing.add("obs-studio")
        with pytest.raises(InstallError) as exc_info:
            installer.download_package("obs-studio")
        assert exc_info.value.exit_code == 100

    def test_install_by_name(
        self, installer: PackageInstaller, package_manager: FakePackageManager
    ) -> None:
        installer.install("lsb-release")
        assert ("install", ("lsb-release",)) in package_manager.calls
        assert installer.is_installed("lsb-release")

    def test_install_by_path(
        self, installer: PackageInstaller, package_manager: FakePackageManager, cache_dir: Path
    ) -> None:
        deb = cache_dir / "obs-vnc_0.4.0_amd64.deb"
        installer.install(deb)
        assert package_manager.calls == [("install_path", deb)]

    def test_local_install_repairs_dependencies_then_retries(
        self, installer: PackageInstaller, package_manager: FakePackageManager, cache_dir: Path
    ) -> None:
        deb = cache_dir / "obs-ndi_4.9.1_amd64.deb"
        package_manager.fail_path_installs = 1

        installer.install(deb)

        assert package_manager.calls == [
            ("install_path", deb),
            ("fix_broken",),
            ("install_path", deb),
        ]
        assert installer.is_installed("obs-ndi")

    def test_local_install_failure_after_repair_raises(
        self, installer: PackageInstaller, package_manager: FakePackageManager, cache_dir: Path
    ) -> None:
        deb = cache_dir / "obs-ndi_4.9.1_amd64.deb"
        package_manager.fail_path_installs = 2

        with pytest.raises(InstallError) as exc_info:
            installer.install(deb)

        assert exc_info.value.target == deb
        assert exc_info.value.exit_code == 100

    def test_install_packages_failure_raises(
        self, installer: PackageInstaller, package_manager: FakePackageManager
    ) -> None:
        package_manager.failing.add("libfftw3-3")
        with pytest.raises(InstallError, match="libfftw3-3"):
            installer.install_packages(["libfftw3-3"])

    def test_install_packages_empty_is_noop(
        self, installer: PackageInstaller, package_manager: FakePackageManager
    ) -> None:
        installer.install_packages([])
        assert package_manager.calls == []

    def test_is_installed_false_for_config_files_state(
        self, installer: PackageInstaller, package_manager: FakePackageManager
    ) -> None:
        package_manager.statuses["obs-websocket"] = "rc"
        assert installer.is_installed("obs-websocket") is False

    def test_remove_absent_package_is_noop(
        self, installer: PackageInstaller, package_manager: FakePackageManager
    ) -> None:
        """Only the presence check is issued for a package that is not installed."""
        assert installer.remove("obs-websocket") is False
        assert package_manager.calls == [("status", "obs-websocket")]

    def test_remove_installed_package(
        self, installer: PackageInstaller, package_manager: FakePackageManager
    ) -> None:
        package_manager.statuses["obs-websocket"] = "ii"

        assert installer.remove("obs-websocket") is True

        assert package_manager.calls[-1] == ("remove", "obs-websocket")
        assert not installer.is_installed("obs-websocket")

    def test_remove_purges_config_files_state(
        self, installer: PackageInstaller, package_manager: FakePackageManager
    ) -> None:
        package_manager.statuses["obs-websocket"] = "rc"

        assert installer.remove("obs-websocket") is True

        assert package_manager.calls[-1] == ("purge", "obs-websocket")

    def test_remove_with_purge(
        self, installer: PackageInstaller, package_manager: FakePackageManager
    ) -> None:
        package_manager.statuses["obs-websocket"] = "ii"
        installer.remove("obs-websocket", purge=True)
        assert package_manager.calls[-1] == ("purge", "obs-websocket")

    def test_remove_failure_raises(self, cache_dir: Path) -> None:
        manager = MagicMock()
        manager.status.return_value = "ii"
        manager.remove.side_effect = CommandError(["apt-get"], 100)
        installer = PackageInstaller(manager=manager, cache_dir=cache_dir)

        with pytest.raises(InstallError):
            installer.remove("obs-websocket")

