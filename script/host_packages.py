import os
import shutil
import typing
import common
from target_platform import platform, target_os

# Linux uses the system development headers, other platforms rebuild the libs but still require the headers
_common_package_list: typing.Final[list[str]] = [
    "wget",
    "make",
    "bzip2",
    "xz-utils",
    "autoconf",
    "texinfo",
    "libgmp-dev",
    "libmpfr-dev",
    "libexpat1-dev",
]
system_package_list: typing.Final[dict[target_os, list[str]]] = {
    target_os.linux: _common_package_list,
    target_os.windows32: ["mingw-w64", *_common_package_list],
    target_os.windows64: ["mingw-w64", *_common_package_list],
    target_os.macos: ["texinfo"],
}


def get_system_package_list(current_platform: platform) -> list[str]:
    return system_package_list[current_platform.os]


def is_root() -> bool:
    return os.geteuid() == 0


def is_installed(package: str) -> bool:
    """Query dpkg for a package"""
    result = common.run_command(f"dpkg -s {package}", ignore_error=True, echo=False, dry_run=False)
    return result is not None


def find_missing_packages(package_list: list[str]) -> list[str]:
    return [package for package in package_list if not is_installed(package)]


@common.stage("PREREQUISITE")
def install_packages(current_platform: platform) -> None:
    """Make sure the host has the packages needed to build for the platform.
    As root the packages are installed via apt, otherwise every missing package is reported and the build stops.
    On macOS Homebrew is used when it exists, without privilege escalation.

    Args:
        current_platform (platform): Target platform

    Raises:
        common.missing_prerequisite_error: Packages are missing and cannot be installed
    """
    required = get_system_package_list(current_platform)
    if current_platform.os == target_os.macos:
        if shutil.which("brew"):
            common.run_command(f"brew install {' '.join(required)}")
        else:
            print("[avr-gdb] You need to install Homebrew first.")
    elif is_root():
        common.log("Running as root user. Installing required packages via apt...")
        common.run_command("apt update")
        common.run_command(f"apt install -y {' '.join(required)}")
    else:
        common.log("Not running as root user. Checking whether all required packages are installed...")
        missing = find_missing_packages(required)
        if missing:
            raise common.missing_prerequisite_error(missing)
        print("[avr-gdb] All required packages are installed. Continuing...")


assert __name__ != "__main__", "Import this file instead of running it directly."
