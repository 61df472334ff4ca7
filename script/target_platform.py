import enum
import common


class target_os(enum.StrEnum):
    linux = "linux"
    macos = "macos"
    windows32 = "windows32"
    windows64 = "windows64"


class target_arch(enum.StrEnum):
    arm = "arm"
    intel = "intel"


# Only Windows is really cross compiled, macOS names its triple so that GMP picks the right cpu
host_triple_list: dict[tuple[target_os, target_arch | None], str] = {
    (target_os.windows32, None): "i686-w64-mingw32",
    (target_os.windows64, None): "x86_64-w64-mingw32",
    (target_os.macos, target_arch.intel): "x86_64-apple-darwin",
    (target_os.macos, target_arch.arm): "arm64-apple-darwin",
}

static_flags = "-static --static"
win32_winnt_flags = "-D_WIN32_WINNT=0x0600"


class platform:
    """Everything the build derives from an (os, arch) pair"""

    os: target_os  # Operating system the debugger runs on
    arch: target_arch  # CPU architecture the debugger runs on
    host: str | None  # Value of --host, None for native builds
    build: str | None  # Explicit value of --build, None when configure guesses it
    fully_static: bool  # Whether the debugger links every library statically
    assembly: bool  # Whether GMP may use its hand-written assembly
    need_dependency_libs: bool  # Whether GMP, MPFR and Expat are built from source
    cflags: list[str]  # Extra CFLAGS of the debugger
    cxxflags: list[str]  # Extra CXXFLAGS of the debugger

    def __init__(self, os: target_os, arch: target_arch) -> None:
        self.os = os
        self.arch = arch
        match os:
            case target_os.windows32 | target_os.windows64:
                self.host = host_triple_list[(os, None)]
                self.build = None
            case target_os.macos:
                self.host = host_triple_list[(os, arch)]
                self.build = self.host
            case target_os.linux:
                self.host = None
                self.build = None
        self.fully_static = os == target_os.linux
        # GMP assembly does not build for macOS on Intel hardware
        self.assembly = not (os == target_os.macos and arch == target_arch.intel)
        self.need_dependency_libs = os != target_os.linux
        self.cflags = [static_flags] if self.fully_static else []
        self.cxxflags = [*self.cflags, win32_winnt_flags] if self.is_windows else [*self.cflags]

    @property
    def is_windows(self) -> bool:
        return self.os in (target_os.windows32, target_os.windows64)

    @property
    def name(self) -> str:
        return f"{self.os}-{self.arch}"

    def host_option(self) -> list[str]:
        """configure options selecting the host and build platform"""
        option: list[str] = []
        if self.host:
            option.append(f"--host={self.host}")
        if self.build:
            option.append(f"--build={self.build}")
        return option

    def assembly_option(self) -> list[str]:
        return [] if self.assembly else ["--disable-assembly"]

    def __repr__(self) -> str:
        return f"platform(os={self.os}, arch={self.arch}, host={self.host}, build={self.build})"


def resolve(os_name: str, arch: str) -> platform:
    """Resolve the platform of a target, rejecting anything outside the supported list

    Args:
        os_name (str): Operating system selector
        arch (str): Architecture selector

    Raises:
        common.invalid_target_error: Unknown selector

    Returns:
        platform: The resolved platform
    """
    if os_name not in target_os.__members__ or arch not in target_arch.__members__:
        raise common.invalid_target_error(os_name, arch)
    return platform(target_os(os_name), target_arch(arch))


def usage() -> str:
    return (
        "usage: build_avr_gdb.py <os> <arch>\n"
        f"  with <os> one of {{ {', '.join(target_os)} }}\n"
        f"  and  <arch> one of {{ {', '.join(target_arch)} }}\n"
        "Note: Only Windows is cross-compiled"
    )


assert __name__ != "__main__", "Import this file instead of running it directly."
