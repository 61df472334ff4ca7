import pytest

import common
import host_packages
import target_platform


def test_package_lists():
    windows = host_packages.get_system_package_list(target_platform.resolve("windows32", "intel"))
    linux = host_packages.get_system_package_list(target_platform.resolve("linux", "arm"))
    assert "mingw-w64" in windows
    assert "mingw-w64" not in linux
    for package in ("libgmp-dev", "libmpfr-dev", "libexpat1-dev", "texinfo"):
        assert package in windows and package in linux
    assert host_packages.get_system_package_list(target_platform.resolve("macos", "intel")) == ["texinfo"]


def test_all_installed(shell):
    host_packages.install_packages(target_platform.resolve("linux", "intel"))
    assert all(command.startswith("dpkg -s ") for command, _ in shell.commands)


def test_missing_packages_are_all_reported(shell):
    shell.missing_packages = {"texinfo", "mingw-w64"}
    with pytest.raises(common.missing_prerequisite_error) as info:
        host_packages.install_packages(target_platform.resolve("windows64", "intel"))
    assert sorted(info.value.packages) == ["mingw-w64", "texinfo"]
    assert info.value.exit_code == 2
    assert "mingw-w64" in str(info.value)
    assert shell.find("apt") == []


def test_root_installs_via_apt(shell, monkeypatch):
    monkeypatch.setattr(host_packages, "is_root", lambda: True)
    host_packages.install_packages(target_platform.resolve("linux", "intel"))
    commands = [command for command, _ in shell.commands]
    assert commands[0] == "apt update"
    assert commands[1].startswith("apt install -y wget make")
    assert shell.find("dpkg") == []


def test_macos_uses_homebrew_when_present(shell, monkeypatch):
    monkeypatch.setattr(host_packages.shutil, "which", lambda name: "/opt/homebrew/bin/brew")
    host_packages.install_packages(target_platform.resolve("macos", "arm"))
    assert [command for command, _ in shell.commands] == ["brew install texinfo"]


def test_macos_without_homebrew_does_nothing(shell, capsys):
    host_packages.install_packages(target_platform.resolve("macos", "arm"))
    assert shell.commands == []
    assert "Homebrew" in capsys.readouterr().out
