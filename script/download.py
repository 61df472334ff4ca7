#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import os
import sys
import argparse
import common
import target_platform
from download_source import *


def _exist_echo(lib: str) -> None:
    """Notice for an archive which is already present"""
    common.log(f"Archive of {lib} exists, skip download.")


def download_specific_package(work_dir: str, lib: package) -> None:
    """Fetch one archive. The file is written under a temporary name and renamed once wget succeeds.

    Args:
        work_dir (str): Directory receiving the archive
        lib (package): Package to fetch
    """
    archive_path = lib.archive_path(work_dir)
    part_path = f"{archive_path}.part"
    common.remove_if_exists(part_path)
    common.run_command(f"wget {lib.url} -O {part_path}")
    common.rename(part_path, archive_path)


@common.stage("DOWNLOAD")
def download(work_dir: str, package_list: list[package]) -> list[package]:
    """Fetch every archive which is not present yet. Existing archives are reused without any check.

    Args:
        work_dir (str): Directory receiving the archives
        package_list (list[package]): Packages to fetch

    Returns:
        list[package]: Packages actually fetched
    """
    fetched: list[package] = []
    for lib in package_list:
        common.log(lib.source_dir_name)
        if lib.check_exist(work_dir):
            _exist_echo(lib.source_dir_name)
            continue
        download_specific_package(work_dir, lib)
        fetched.append(lib)
    return fetched


def remove(work_dir: str, package_list: list[package]) -> None:
    """Remove downloaded archives so that the next run fetches them again"""
    for lib in package_list:
        if lib.check_exist(work_dir):
            common.remove(lib.archive_path(work_dir))
        else:
            print(f"[avr-gdb] Archive of {lib.source_dir_name} does not exist, skip remove.")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Download the source archives needed to build avr-gdb for a target.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("os", type=str, help="Operating system the debugger runs on.")
    parser.add_argument("arch", type=str, help="CPU architecture the debugger runs on.")
    parser.add_argument("--work-dir", type=str, help="The directory receiving the archives.", default=os.getcwd())
    parser.add_argument(
        "--gdb-version", type=str, help="Version of gdb to fetch.", default=os.environ.get("VER_GDB", default_gdb_version)
    )
    parser.add_argument("--remove", action="store_true", help="Remove downloaded archives instead of fetching them.")
    parser.add_argument(
        "--dry-run",
        dest="dry_run",
        action=argparse.BooleanOptionalAction,
        help="Preview the commands without actually executing them.",
        default=False,
    )
    args = parser.parse_args(argv)
    try:
        current_platform = target_platform.resolve(args.os, args.arch)
    except common.invalid_target_error as e:
        print(e, file=sys.stderr)
        print(target_platform.usage(), file=sys.stderr)
        return e.exit_code
    check_gdb_version(args.gdb_version)
    common.command_dry_run.set(args.dry_run)

    work_dir = os.path.abspath(args.work_dir)
    common.setup_log(work_dir)
    package_list = get_package_list(args.gdb_version, current_platform.need_dependency_libs)
    try:
        if args.remove:
            remove(work_dir, package_list)
        else:
            download(work_dir, package_list)
    except common.build_error as e:
        return common.report_failure(e)
    return 0


if __name__ == "__main__":
    sys.exit(main())
