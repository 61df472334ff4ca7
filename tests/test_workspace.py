import os

import pytest

import common
import target_platform
from gdb_environment import environment, get_patch_list, install_prefix


def make_env(work_dir: str, os_name: str = "windows64", arch: str = "intel") -> environment:
    current = target_platform.resolve(os_name, arch)
    return environment(current, "17.1", work_dir, os.path.join(work_dir, "build"), work_dir, 4)


def test_paths_are_keyed_by_target(tmp_path):
    env = make_env(str(tmp_path))
    assert env.prefix == os.path.join(str(tmp_path), "build", "avr-windows64-intel")
    assert env.dependency_prefix == os.path.join(str(tmp_path), "tmp", "windows64-intel")
    assert list(env.package_list) == ["gdb", "gmp", "mpfr", "expat"]
    assert list(make_env(str(tmp_path), "linux", "intel").package_list) == ["gdb"]


def test_cleanup_leaves_no_files_of_previous_run(tmp_path):
    env = make_env(str(tmp_path))
    for path in (
        os.path.join(env.prefix, "bin", "avr-gdb.exe"),
        os.path.join(env.dependency_prefix, "include", "gmp.h"),
        os.path.join(str(tmp_path), "gdb-17.1", "gdb", "version.in"),
        os.path.join(str(tmp_path), "expat-2.7.1", "obj", "Makefile"),
    ):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        open(path, "w").close()
    (tmp_path / "gdb-17.1.tar.xz").write_text("archive")

    env.cleanup()

    assert os.listdir(env.prefix) == []
    assert os.listdir(env.dependency_prefix) == []
    assert not os.path.exists(tmp_path / "gdb-17.1")
    assert not os.path.exists(tmp_path / "expat-2.7.1")
    # Archives are a download cache and survive the reset
    assert os.path.exists(tmp_path / "gdb-17.1.tar.xz")


def test_cleanup_keeps_other_targets(tmp_path):
    other = make_env(str(tmp_path), "macos", "arm")
    os.makedirs(os.path.join(other.dependency_prefix, "lib"))
    os.makedirs(os.path.join(other.prefix, "bin"))
    make_env(str(tmp_path)).cleanup()
    assert os.path.isdir(os.path.join(other.dependency_prefix, "lib"))
    assert os.path.isdir(os.path.join(other.prefix, "bin"))


def test_patch_list_is_lexical(tmp_path):
    for name in ("b.patch", "a.patch", "10-x.patch", "notes.txt", "VERSION"):
        (tmp_path / name).write_text("")
    assert [os.path.basename(path) for path in get_patch_list(str(tmp_path))] == ["10-x.patch", "a.patch", "b.patch"]


def test_install_prefix_check(tmp_path):
    prefix = str(tmp_path / "prefix")
    with pytest.raises(common.prefix_error):
        install_prefix("gmp", prefix).check()
    os.makedirs(prefix)
    with pytest.raises(common.prefix_error):
        install_prefix("gmp", prefix).check()
    os.makedirs(os.path.join(prefix, "include"))
    open(os.path.join(prefix, "include", "mpfr.h"), "w").close()
    with pytest.raises(common.prefix_error):
        install_prefix("gmp", prefix).check()
    assert install_prefix("mpfr", prefix).check().path == prefix


def test_install_prefix_check_of_gdb(tmp_path):
    prefix = str(tmp_path / "avr-linux-intel")
    os.makedirs(os.path.join(prefix, "bin"))
    with pytest.raises(common.prefix_error):
        install_prefix("gdb", prefix).check()
    open(os.path.join(prefix, "bin", "avr-gdb"), "w").close()
    install_prefix("gdb", prefix).check()
