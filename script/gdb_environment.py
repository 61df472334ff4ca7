import enum
import os
import typing
import common
from download_source import package, get_gdb_package, get_dependency_package_list
from target_platform import platform


class build_stage(enum.StrEnum):
    gmp = "GMP"
    mpfr = "MPFR"
    expat = "EXPAT"
    gdb = "GDB"
    done = "DONE"


# Options every avr-gdb is configured with
gdb_option: typing.Final[tuple[str, ...]] = (
    "--target=avr",
    "--with-static-standard-libraries",
    "--with-expat",
    "--without-python",
    "--without-guile",
)
static_lib_option: typing.Final[tuple[str, ...]] = ("--enable-static", "--disable-shared")
# A header every dependency installs, used to tell a finished install from a partial one
lib_header_list: typing.Final[dict[str, str]] = {"gmp": "gmp.h", "mpfr": "mpfr.h", "expat": "expat.h"}
version_file_name = "VERSION"


def get_stage_list(current_platform: platform) -> tuple[build_stage, ...]:
    """Stages run for a platform, in order. Native Linux uses the system libraries and only builds gdb."""
    if current_platform.need_dependency_libs:
        return (build_stage.gmp, build_stage.mpfr, build_stage.expat, build_stage.gdb, build_stage.done)
    return (build_stage.gdb, build_stage.done)


def get_patch_list(patch_dir: str) -> list[str]:
    """Every *.patch file in patch_dir, in lexical order"""
    return [os.path.join(patch_dir, file) for file in sorted(os.listdir(patch_dir)) if file.endswith(".patch")]


class install_prefix:
    """Install prefix left behind by a finished stage"""

    lib: str  # Library installed into the prefix
    path: str  # Root of the prefix

    def __init__(self, lib: str, path: str) -> None:
        self.lib = lib
        self.path = path

    def check(self) -> "install_prefix":
        """Make sure the prefix holds a finished install

        Raises:
            common.prefix_error: The prefix is missing, empty or lacks the library

        Returns:
            install_prefix: self
        """
        if common.command_dry_run.get():
            return self
        if not os.path.isdir(self.path):
            raise common.prefix_error(self.lib, self.path, "directory does not exist")
        if not os.listdir(self.path):
            raise common.prefix_error(self.lib, self.path, "directory is empty")
        if self.lib in lib_header_list:
            header = os.path.join(self.path, "include", lib_header_list[self.lib])
            if not os.path.exists(header):
                raise common.prefix_error(self.lib, self.path, f'"{header}" is not installed')
        else:
            bin_dir = os.path.join(self.path, "bin")
            if not os.path.isdir(bin_dir) or not os.listdir(bin_dir):
                raise common.prefix_error(self.lib, self.path, "no executable is installed")
        return self

    def __repr__(self) -> str:
        return f"install_prefix({self.lib}, {self.path})"


class environment(common.basic_environment):
    platform: platform  # Target platform
    package_list: dict[str, package]  # Every package the target needs, gdb first
    tmp_dir: str  # Root of the transient install trees
    dependency_prefix: str  # Install prefix shared by GMP, MPFR and Expat of this target
    patch_dir: str  # Directory holding *.patch and VERSION

    def __init__(
        self,
        current_platform: platform,
        gdb_version: str,
        work_dir: str,
        base_dir: str,
        patch_dir: str,
        jobs: int,
    ) -> None:
        super().__init__(gdb_version, f"avr-{current_platform.name}", work_dir, base_dir, jobs)
        self.platform = current_platform
        self.package_list = {"gdb": get_gdb_package(gdb_version)}
        if current_platform.need_dependency_libs:
            self.package_list.update(get_dependency_package_list())
        self.tmp_dir = os.path.join(work_dir, "tmp")
        self.dependency_prefix = os.path.join(self.tmp_dir, current_platform.name)
        self.patch_dir = patch_dir

    def source_dir(self, lib: str) -> str:
        return self.package_list[lib].source_dir(self.work_dir)

    def reset_install_tree(self) -> None:
        """Recreate the final install tree of this target"""
        common.mkdir(self.prefix)

    def reset_temp_tree(self) -> None:
        """Recreate the transient install tree of this target"""
        common.mkdir(self.dependency_prefix)

    def cleanup(self) -> None:
        """Start from a clean workspace: empty install trees and no extracted sources of a previous run"""
        common.log("Clearing output directories...")
        self.reset_install_tree()
        self.reset_temp_tree()
        common.log("Clearing old source directories...")
        for lib in (get_gdb_package(self.version), *get_dependency_package_list().values()):
            common.remove_if_exists(lib.source_dir(self.work_dir))

    def extract(self, lib: str) -> str:
        """Extract the archive of a package into the work dir

        Returns:
            str: The extracted source tree
        """
        archive = self.package_list[lib].file_name
        common.log(f"Extracting {archive}...")
        common.run_command(f"tar xf {archive}", cwd=self.work_dir)
        return self.source_dir(lib)

    def make_build_dir(self, lib: str) -> str:
        """Create the isolated build directory inside the source tree of a package

        Returns:
            str: The build directory
        """
        build_dir = os.path.join(self.source_dir(lib), "obj-avr" if lib == "gdb" else "obj")
        common.mkdir(build_dir)
        return build_dir

    def configure(self, build_dir: str, prefix: str, *option: str) -> None:
        """Configure a package from its build directory

        Args:
            build_dir (str): Build directory below the source tree
            prefix (str): Install prefix
            option (tuple[str, ...]): Further configure options
        """
        options = " ".join((f"--prefix={prefix}", *filter(None, option)))
        common.run_command(f"../configure {options}", cwd=build_dir)

    def make(self, build_dir: str) -> None:
        common.run_command(f"make -j {self.jobs}", cwd=build_dir)

    def install(self, build_dir: str) -> None:
        common.run_command("make install-strip", cwd=build_dir)

    def conf_make(self, lib: str, prefix: str, *option: str, extract: bool = True) -> install_prefix:
        """Run one configure, build and install cycle, then purge the build directory

        Args:
            lib (str): Package to build
            prefix (str): Install prefix
            option (tuple[str, ...]): Configure options
            extract (bool, optional): Whether to extract the archive first. Extracted by default.

        Returns:
            install_prefix: The checked install prefix
        """
        if extract:
            self.extract(lib)
        build_dir = self.make_build_dir(lib)
        self.configure(build_dir, prefix, *option)
        self.make(build_dir)
        self.install(build_dir)
        common.clear_dir(build_dir)
        return install_prefix(lib, prefix).check()

    @common.stage("PATCH")
    def patch_gdb(self) -> None:
        """Extract gdb, set the local version string and apply every patch in lexical order"""
        source_dir = self.extract("gdb")
        common.log("Patching...")
        common.copy(os.path.join(self.patch_dir, version_file_name), os.path.join(source_dir, "gdb", "version.in"))
        for patch_file in get_patch_list(self.patch_dir):
            common.log(f"Applying {os.path.basename(patch_file)}")
            common.run_command(f"patch -p 1 -i {patch_file}", cwd=source_dir)


class gdb_build:
    env: environment  # Build environment
    gmp_option: list[str]  # GMP configure options
    mpfr_option: list[str]  # MPFR configure options without the GMP prefix
    expat_option: list[str]  # Expat configure options
    gdb_option: list[str]  # gdb configure options without the dependency prefixes

    def __init__(self, env: environment) -> None:
        self.env = env
        current_platform = env.platform
        host_option = current_platform.host_option()
        self.gmp_option = [*static_lib_option, *current_platform.assembly_option(), *host_option]
        self.mpfr_option = [*static_lib_option, *host_option]
        self.expat_option = [*static_lib_option, *host_option]
        # Expat cannot guess the build platform when cross compiling for Windows
        if current_platform.build is None and current_platform.host:
            self.expat_option.append("--build=$(../conftools/config.guess)")
        self.gdb_option = [*gdb_option, *host_option]
        if current_platform.need_dependency_libs:
            self.gdb_option = [*static_lib_option, *self.gdb_option]
        if current_platform.cflags:
            self.gdb_option.append(f'CFLAGS="{" ".join(current_platform.cflags)}"')
        if current_platform.cxxflags:
            self.gdb_option.append(f'CXXFLAGS="{" ".join(current_platform.cxxflags)}"')

    @common.stage(build_stage.gmp)
    def build_gmp(self) -> install_prefix:
        return self.env.conf_make("gmp", self.env.dependency_prefix, *self.gmp_option)

    @common.stage(build_stage.mpfr)
    def build_mpfr(self, gmp: install_prefix) -> install_prefix:
        return self.env.conf_make("mpfr", self.env.dependency_prefix, f"--with-gmp={gmp.check().path}", *self.mpfr_option)

    @common.stage(build_stage.expat)
    def build_expat(self) -> install_prefix:
        return self.env.conf_make("expat", self.env.dependency_prefix, *self.expat_option)

    @common.stage(build_stage.gdb)
    def build_gdb(self, *dependency: install_prefix) -> install_prefix:
        """Build gdb into the output directory. Non-native targets pass the prefixes of GMP, MPFR and Expat.

        Args:
            dependency (tuple[install_prefix, ...]): Checked prefixes of GMP, MPFR and Expat, in that order

        Returns:
            install_prefix: The output directory
        """
        option: list[str] = []
        if self.env.platform.need_dependency_libs:
            assert [prefix.lib for prefix in dependency] == ["gmp", "mpfr", "expat"], f"Invalid gdb dependency: {dependency}."
            gmp, mpfr, expat = (prefix.check() for prefix in dependency)
            option = [f"--with-gmp={gmp.path}", f"--with-mpfr={mpfr.path}", f"--with-libexpat-prefix={expat.path}"]
        else:
            assert dependency == (), "Native Linux links against the system libraries."
        return self.env.conf_make("gdb", self.env.prefix, *option, *self.gdb_option, extract=False)

    def build(self) -> install_prefix:
        """Run every stage of the platform in order. Any failure stops the whole build.

        Returns:
            install_prefix: The output directory holding avr-gdb
        """
        stage_list = get_stage_list(self.env.platform)
        common.log(f"***GDB ({', '.join(stage_list[:-1])})***")
        if self.env.platform.need_dependency_libs:
            gmp = self.build_gmp()
            mpfr = self.build_mpfr(gmp)
            expat = self.build_expat()
            result = self.build_gdb(gmp, mpfr, expat)
        else:
            common.log(f"Making for {self.env.platform.os}...")
            result = self.build_gdb()
        common.log(build_stage.done)
        return result


assert __name__ != "__main__", "Import this file instead of running it directly."
