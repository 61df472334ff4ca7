#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import os
import sys
import argparse
import common
import download
import host_packages
import target_platform
from download_source import default_gdb_version, check_gdb_version
from gdb_environment import environment, gdb_build, get_stage_list, get_patch_list, install_prefix, version_file_name


class configure(common.basic_configure):
    jobs: int  # Number of parallel make jobs
    base_dir: str  # Directory holding the final install trees
    gdb_version: str  # Version of gdb
    patch_dir: str  # Directory holding *.patch and VERSION
    compress: bool  # Whether to pack the install tree

    def __init__(
        self,
        work_dir: str | None = None,
        jobs: int | None = None,
        base_dir: str | None = None,
        gdb_version: str | None = None,
        patch_dir: str | None = None,
        compress: bool = False,
    ) -> None:
        super().__init__(work_dir)
        self.jobs = jobs if jobs is not None else common.get_default_jobs()
        self.base_dir = os.path.abspath(base_dir or os.environ.get("BASE") or os.path.join(self.work_dir, "build"))
        self.gdb_version = gdb_version or os.environ.get("VER_GDB") or default_gdb_version
        self.patch_dir = os.path.abspath(patch_dir or self.work_dir)
        self.compress = compress

    def check(self) -> None:
        common._check_work_dir(self.work_dir)
        assert self.jobs > 0, f"Invalid jobs: {self.jobs}."
        check_gdb_version(self.gdb_version)
        assert os.path.isdir(self.patch_dir), f'The patch dir "{self.patch_dir}" does not exist.'
        version_path = os.path.join(self.patch_dir, version_file_name)
        assert os.path.isfile(version_path), f'Cannot find the gdb version file "{version_path}".'


def dump_plan(current_platform: target_platform.platform, env: environment) -> None:
    """Print the resolved platform, the stages and the packages of a build"""
    print(f"Platform: {current_platform.name}")
    print(f"\thost: {current_platform.host or 'native'}")
    print(f"\tbuild: {current_platform.build or 'guessed'}")
    print(f"\tfully static: {current_platform.fully_static}")
    print(f"\tassembly: {current_platform.assembly}")
    print("Stages:")
    for stage in get_stage_list(current_platform):
        print(f"\t{stage}")
    print("Packages:")
    for lib in env.package_list.values():
        print(f"\t{lib.source_dir_name}: {lib.url}")
    print("Patches:")
    for patch_file in get_patch_list(env.patch_dir):
        print(f"\t{os.path.basename(patch_file)}")
    print(f"Output: {env.prefix}")


def build_avr_gdb(config: configure, current_platform: target_platform.platform) -> install_prefix:
    """Run the whole pipeline for one target

    Args:
        config (configure): Build settings
        current_platform (target_platform.platform): Target platform

    Returns:
        install_prefix: The output directory holding avr-gdb
    """
    host_packages.install_packages(current_platform)
    common.log("Start")
    env = environment(current_platform, config.gdb_version, config.work_dir, config.base_dir, config.patch_dir, config.jobs)
    env.cleanup()
    download.download(config.work_dir, list(env.package_list.values()))
    env.patch_gdb()
    result = gdb_build(env).build()
    if config.compress:
        common.log(f"Compressed to {env.compress()}")
    return result


def _add_argument(parser: argparse.ArgumentParser, default_config: configure) -> None:
    configure.add_argument(parser)
    parser.add_argument("os", type=str, help=f"Operating system the debugger runs on: {', '.join(target_platform.target_os)}.")
    parser.add_argument("arch", type=str, help=f"CPU architecture the debugger runs on: {', '.join(target_platform.target_arch)}.")
    # A string default goes through type=int, so a malformed $JOBCOUNT is reported as a usage error
    parser.add_argument(
        "--jobs",
        type=int,
        help="Number of concurrent jobs at build time. Use $JOBCOUNT or cpu cores by default.",
        default=os.environ.get("JOBCOUNT") or default_config.jobs,
    )
    parser.add_argument("--base-dir", type=str, help="The dir receiving avr-<os>-<arch>. Use $BASE or <work-dir>/build by default.")
    parser.add_argument("--gdb-version", type=str, help="Version of gdb. Use $VER_GDB by default.", default=default_config.gdb_version)
    parser.add_argument("--patch-dir", type=str, help="The dir holding *.patch and VERSION. Use the work dir by default.")
    parser.add_argument(
        "--compress", action=argparse.BooleanOptionalAction, help="Pack the install tree into a .tar.xz.", default=default_config.compress
    )
    parser.add_argument("--dump", action="store_true", help="Print the build plan and exit.")
    parser.add_argument("--system", action="store_true", help="Print needy system packages and exit.")


def main(argv: list[str] | None = None) -> int:
    default_config = configure()
    parser = argparse.ArgumentParser(
        description="Build statically linked, patched avr-gdb for a specific platform.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        epilog=target_platform.usage(),
    )
    _add_argument(parser, default_config)
    args = parser.parse_args(argv)

    # Nothing may touch the disk before the target is known to be valid
    try:
        current_platform = target_platform.resolve(args.os, args.arch)
    except common.invalid_target_error as e:
        print(target_platform.usage(), file=sys.stderr)
        print(e, file=sys.stderr)
        return e.exit_code

    if args.system:
        print(f"Please install following system packages: {' '.join(host_packages.get_system_package_list(current_platform))}")
        return 0

    current_config = configure.parse_args(args)
    current_config.load_config(args)
    current_config.check()

    if args.dump:
        env = environment(
            current_platform,
            current_config.gdb_version,
            current_config.work_dir,
            current_config.base_dir,
            current_config.patch_dir,
            current_config.jobs,
        )
        dump_plan(current_platform, env)
        return 0

    common.setup_log(current_config.work_dir)
    try:
        build_avr_gdb(current_config, current_platform)
    except common.build_error as e:
        return common.report_failure(e)
    current_config.save_config(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
