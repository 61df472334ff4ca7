import os
import subprocess
from collections.abc import Iterator

import pytest

import common
import host_packages

headers = {"gmp": "gmp.h", "mpfr": "mpfr.h", "expat": "expat.h"}


class fake_shell:
    """Stands in for common.run_command. Records every command and simulates its effect on disk."""

    def __init__(self) -> None:
        self.commands: list[tuple[str, str | None]] = []
        self.fail_on: str | None = None
        self.fail_cwd: str | None = None
        self.missing_packages: set[str] = set()
        self.skip_install: set[str] = set()
        self.prefix_by_dir: dict[str, str] = {}
        self.snapshots: dict[str, list[str]] = {}

    def __call__(self, command, cwd=None, ignore_error=False, capture=False, echo=True, dry_run=None):
        self.commands.append((command, cwd))
        if dry_run is None and common.command_dry_run.get() or dry_run:
            return None
        if command.startswith("dpkg -s "):
            if command.split()[-1] in self.missing_packages:
                return None
            return subprocess.CompletedProcess(command, 0, "", "")
        if self.fail_on and self.fail_on in command and (self.fail_cwd is None or self.fail_cwd in (cwd or "")):
            if ignore_error:
                return None
            raise common.command_error(command, cwd or os.getcwd(), 1)
        self._simulate(command, cwd)
        return subprocess.CompletedProcess(command, 0, "", "")

    def _simulate(self, command: str, cwd: str | None) -> None:
        if command.startswith("wget "):
            path = command.split(" -O ", 1)[1]
            with open(path, "w") as file:
                file.write("archive")
        elif command.startswith("tar xf "):
            archive = command.split()[-1]
            source_dir = os.path.join(cwd, archive.removesuffix(".tar.xz"))
            os.makedirs(os.path.join(source_dir, "gdb"), exist_ok=True)
        elif command.startswith("../configure "):
            prefix = command.split()[1].removeprefix("--prefix=")
            self.prefix_by_dir[cwd] = prefix
            lib = self.lib_of(cwd)
            if lib == "gdb":
                self.snapshots["gdb"] = [
                    os.path.join(root, file) for root, _, files in os.walk(os.path.dirname(self.gmp_prefix(command))) for file in files
                ]
        elif command == "make install-strip":
            lib = self.lib_of(cwd)
            if lib in self.skip_install:
                return
            prefix = self.prefix_by_dir[cwd]
            if lib == "gdb":
                os.makedirs(os.path.join(prefix, "bin"), exist_ok=True)
                open(os.path.join(prefix, "bin", "avr-gdb"), "w").close()
            else:
                os.makedirs(os.path.join(prefix, "include"), exist_ok=True)
                os.makedirs(os.path.join(prefix, "lib"), exist_ok=True)
                open(os.path.join(prefix, "include", headers[lib]), "w").close()
                open(os.path.join(prefix, "lib", f"lib{lib}.a"), "w").close()

    @staticmethod
    def lib_of(build_dir: str) -> str:
        return os.path.basename(os.path.dirname(build_dir)).split("-")[0]

    @staticmethod
    def gmp_prefix(command: str) -> str:
        for option in command.split():
            if option.startswith("--with-gmp="):
                return os.path.join(option.removeprefix("--with-gmp="), "include")
        return "/nonexistent/include"

    def configured(self) -> list[str]:
        """Libraries in the order their configure ran"""
        return [self.lib_of(cwd) for command, cwd in self.commands if command.startswith("../configure ")]

    def find(self, prefix: str) -> list[tuple[str, str | None]]:
        return [(command, cwd) for command, cwd in self.commands if command.startswith(prefix)]


@pytest.fixture
def shell(monkeypatch) -> Iterator[fake_shell]:
    fake = fake_shell()
    monkeypatch.setattr(common, "run_command", fake)
    monkeypatch.setattr(host_packages, "is_root", lambda: False)
    monkeypatch.setattr(host_packages.shutil, "which", lambda name: None)
    common.command_dry_run.set(False)
    yield fake
    common.command_dry_run.set(False)


@pytest.fixture
def work_dir(tmp_path, monkeypatch) -> str:
    """An empty work dir holding only the local gdb version file"""
    for name in ("BASE", "VER_GDB", "JOBCOUNT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "VERSION").write_text("17.1-avr\n")
    return str(tmp_path)
