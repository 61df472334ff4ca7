import enum
import os
import typing
import packaging.version as version

default_gdb_version: typing.Final[str] = "17.1"


class extra_lib_version(enum.StrEnum):
    gmp = "6.3.0"  # GDB 11+ needs libgmp
    mpfr = "4.2.2"  # GDB 14+ needs libmpfr
    expat = "2.7.1"  # GDB XML support


class package:
    """A versioned source archive"""

    name: str  # Package name
    version: str  # Package version
    url: str  # Download url of the archive
    file_name: str  # Local file name of the archive
    source_dir_name: str  # Name of the directory the archive extracts to

    def __init__(self, name: str, version: str, url: str) -> None:
        self.name = name
        self.version = version
        self.url = url
        self.file_name = url.rsplit("/", 1)[1]
        self.source_dir_name = f"{name}-{version}"

    def archive_path(self, work_dir: str) -> str:
        return os.path.join(work_dir, self.file_name)

    def source_dir(self, work_dir: str) -> str:
        return os.path.join(work_dir, self.source_dir_name)

    def check_exist(self, work_dir: str) -> bool:
        """Whether the archive is already present. Only the file name is checked."""
        return os.path.exists(self.archive_path(work_dir))

    def __repr__(self) -> str:
        return f"package({self.source_dir_name})"


def _expat_tag(expat_version: str) -> str:
    return "R_" + expat_version.replace(".", "_")


def get_gdb_package(gdb_version: str = default_gdb_version) -> package:
    return package("gdb", gdb_version, f"https://ftpmirror.gnu.org/gdb/gdb-{gdb_version}.tar.xz")


def get_dependency_package_list() -> dict[str, package]:
    """Packages built from source for targets without usable system libraries, in build order

    Returns:
        dict[str, package]: {name: package}
    """
    gmp, mpfr, expat = extra_lib_version.gmp, extra_lib_version.mpfr, extra_lib_version.expat
    return {
        "gmp": package("gmp", gmp, f"https://ftpmirror.gnu.org/gmp/gmp-{gmp}.tar.xz"),
        "mpfr": package("mpfr", mpfr, f"https://ftpmirror.gnu.org/mpfr/mpfr-{mpfr}.tar.xz"),
        "expat": package(
            "expat", expat, f"https://github.com/libexpat/libexpat/releases/download/{_expat_tag(expat)}/expat-{expat}.tar.xz"
        ),
    }


def get_package_list(gdb_version: str, need_dependency_libs: bool) -> list[package]:
    """All packages one build needs

    Args:
        gdb_version (str): Version of gdb
        need_dependency_libs (bool): Whether GMP, MPFR and Expat are built from source

    Returns:
        list[package]: Packages, gdb first
    """
    package_list = [get_gdb_package(gdb_version)]
    if need_dependency_libs:
        package_list += get_dependency_package_list().values()
    return package_list


def check_gdb_version(gdb_version: str) -> None:
    """Check that the gdb version names a release, e.g. 17.1"""
    try:
        current: version.Version | None = version.Version(gdb_version)
    except version.InvalidVersion:
        current = None
    assert current is not None and current.release and str(current) == gdb_version, f'Invalid gdb version "{gdb_version}".'


__all__ = [
    "default_gdb_version",
    "extra_lib_version",
    "package",
    "get_gdb_package",
    "get_dependency_package_list",
    "get_package_list",
    "check_gdb_version",
]


assert __name__ != "__main__", "Import this file instead of running it directly."
