import functools
import os
import psutil
import shutil
import json
import argparse
import inspect
import itertools
import logging
import subprocess
import sys
import traceback
from collections.abc import Callable
from typing import ParamSpec, TypeVar

log_file_name = "avr-gdb-build.log"
_logger = logging.getLogger("avr_gdb")

P = ParamSpec("P")
R = TypeVar("R")


class command_dry_run:
    """Whether commands are only echoed instead of executed"""

    _dry_run: bool = False

    @classmethod
    def get(cls) -> bool:
        return cls._dry_run

    @classmethod
    def set(cls, dry_run: bool) -> None:
        cls._dry_run = dry_run


def _support_dry_run(echo_fn: Callable[..., str | None] | None = None) -> Callable[[Callable[P, R]], Callable[P, R | None]]:
    """Decide from the dry_run parameter and the global state in command_dry_run whether to only echo the command.
    If fn has no dry_run parameter only the global state is used.

    Args:
        echo_fn (Callable[..., str | None] | None, optional): Callback returning the text to echo or None. Every parameter
            of the callback must be a parameter of fn. No echo by default.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R | None]:
        signature = inspect.signature(fn)

        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R | None:
            bound_args = signature.bind(*args, **kwargs)
            bound_args.apply_defaults()
            if echo_fn:
                param_list: list = []
                for key in inspect.signature(echo_fn).parameters.keys():
                    assert (
                        key in bound_args.arguments
                    ), f"The param {key} of echo_fn is not in the param list of fn. Every param of echo_fn should be able to find in the param list of fn."
                    param_list.append(bound_args.arguments[key])
                echo = echo_fn(*param_list)
                if echo is not None:
                    print(echo)
            dry_run: bool | None = bound_args.arguments.get("dry_run")
            assert isinstance(dry_run, bool | None), f"The param dry_run must be a bool or None."
            if dry_run is None and command_dry_run.get() or dry_run:
                return
            return fn(*bound_args.args, **bound_args.kwargs)

        return wrapper

    return decorator


class build_error(Exception):
    """Base of every error that terminates a build"""

    exit_code: int = 1


class invalid_target_error(build_error, ValueError):
    """Unrecognized operating system or architecture selector"""

    exit_code = 2

    def __init__(self, os_name: str, arch: str) -> None:
        super().__init__(f'Unsupported target "{os_name} {arch}".')
        self.os_name = os_name
        self.arch = arch


class missing_prerequisite_error(build_error):
    """Required host packages are absent and cannot be installed"""

    exit_code = 2

    def __init__(self, packages: list[str]) -> None:
        super().__init__(
            f'Required packages are not installed: {" ".join(packages)}. '
            "Install them manually or run the script with root (sudo)."
        )
        self.packages = packages


class command_error(build_error):
    """A subprocess returned non-zero"""

    def __init__(self, command: str, cwd: str, returncode: int) -> None:
        super().__init__(f'Command "{command}" failed with errno={returncode}.')
        self.command = command
        self.cwd = cwd
        self.returncode = returncode


class filesystem_error(build_error):
    """A file or directory operation failed"""

    def __init__(self, operation: str, path: str, error: OSError) -> None:
        super().__init__(f'Cannot {operation} "{path}": {error.strerror or error}.')
        self.command = f"{operation} {path}"
        self.cwd = os.getcwd()
        self.path = path
        self.returncode = error.errno


class stage_error(build_error):
    """A command or file operation failed inside a named build stage"""

    def __init__(self, stage: str, error: command_error | filesystem_error) -> None:
        super().__init__(f"Stage {stage} failed: {error}")
        self.stage = stage
        self.command = error.command
        self.cwd = error.cwd
        self.returncode = error.returncode


class prefix_error(build_error):
    """A stage did not leave a usable install prefix behind"""

    def __init__(self, lib: str, path: str, reason: str) -> None:
        super().__init__(f'Install prefix of {lib} at "{path}" is unusable: {reason}.')
        self.lib = lib
        self.path = path


def stage(name: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Log the start of a stage and attach the stage name to a failing command or file operation

    Args:
        name (str): Stage name shown in diagnostics
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            log(f"{name}...")
            try:
                return fn(*args, **kwargs)
            except (command_error, filesystem_error) as e:
                raise stage_error(name, e) from e

        return wrapper

    return decorator


def setup_log(log_dir: str) -> str:
    """Append timestamped progress lines to the log file in log_dir. Nothing is written in a dry run.

    Args:
        log_dir (str): Directory holding the log file

    Returns:
        str: Path of the log file
    """
    path = os.path.join(log_dir, log_file_name)
    for handler in _logger.handlers[:]:
        _logger.removeHandler(handler)
        handler.close()
    _logger.setLevel(logging.INFO)
    _logger.propagate = False
    if command_dry_run.get():
        _logger.addHandler(logging.NullHandler())
        return path
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter("[%(asctime)s]: %(message)s", "%d %b %y %H:%M:%S"))
    _logger.addHandler(handler)
    return path


def log(message: str) -> None:
    """Echo a progress message and append it to the log file"""
    print(f"[avr-gdb] {message}")
    _logger.info(message)


@_support_dry_run(lambda command, echo: f"[avr-gdb] Run command: {command}" if echo else None)
def run_command(
    command: str,
    cwd: str | None = None,
    ignore_error: bool = False,
    capture: bool = False,
    echo: bool = True,
    dry_run: bool | None = None,
) -> subprocess.CompletedProcess[str] | None:
    """Run a shell command. Unless errors are ignored a failing command raises command_error.

    Args:
        command (str): Command to run
        cwd (str | None, optional): Working directory of the command. Defaults to the current directory.
        ignore_error (bool, optional): Whether to ignore a non-zero exit. Not ignored by default.
        capture (bool, optional): Whether to capture the output. Not captured by default.
        echo (bool, optional): Whether to echo anything, including error notices. Echo by default.
        dry_run (bool | None, optional): Whether to only echo the command. Defaults to None.

    Raises:
        command_error: The command failed and ignore_error is False

    Returns:
        None | subprocess.CompletedProcess[str]: The result on success, otherwise None
    """

    if capture:
        pipe = subprocess.PIPE
    elif echo:
        pipe = None
    else:
        pipe = subprocess.DEVNULL
    try:
        result = subprocess.run(command, cwd=cwd, stdout=pipe, stderr=pipe, shell=True, check=True, text=True)
    except subprocess.CalledProcessError as e:
        if not ignore_error:
            raise command_error(command, cwd or os.getcwd(), e.returncode) from e
        elif echo:
            print(f'Command "{command}" failed with errno={e.returncode}, but it is ignored.')
        return None
    return result


def _check_os_error(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Turn an OSError of a file helper into filesystem_error naming the operation and the path

    Args:
        operation (str): Name of the operation shown in diagnostics
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return fn(*args, **kwargs)
            except OSError as e:
                path = e.filename if e.filename is not None else (args[0] if args else "?")
                raise filesystem_error(operation, str(path), e) from e

        return wrapper

    return decorator


@_support_dry_run(lambda path: f"[avr-gdb] Create directory {path}.")
@_check_os_error("mkdir")
def mkdir(path: str, remove_if_exist=True, dry_run: bool | None = None) -> None:
    """Create a directory

    Args:
        path (str): Directory to create
        remove_if_exist (bool, optional): Whether to remove an existing directory first. Removed by default.
        dry_run (bool | None, optional): Whether to only echo the command. Defaults to None.
    """
    if remove_if_exist and os.path.exists(path):
        shutil.rmtree(path)
    os.makedirs(path, exist_ok=True)


@_support_dry_run(lambda src, dst: f"[avr-gdb] Copy {src} -> {dst}.")
@_check_os_error("copy")
def copy(src: str, dst: str, dry_run: bool | None = None) -> None:
    """Copy a file, replacing the destination"""
    dir = os.path.dirname(dst)
    if dir != "":
        mkdir(dir, False)
    if os.path.exists(dst):
        os.remove(dst)
    shutil.copyfile(src, dst)


@_support_dry_run(lambda path: f"[avr-gdb] Remove {path}.")
@_check_os_error("remove")
def remove(path: str, dry_run: bool | None = None) -> None:
    """Remove a file or directory

    Args:
        path (str): Path to remove
        dry_run (bool | None, optional): Whether to only echo the command. Defaults to None.
    """
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


@_support_dry_run(lambda path: f"[avr-gdb] Remove {path} if path exists.")
def remove_if_exists(path: str, dry_run: bool | None = None) -> None:
    """Remove a path if it exists"""
    if os.path.lexists(path):
        remove(path)


@_support_dry_run(lambda path: f"[avr-gdb] Clear directory {path}.")
@_check_os_error("clear")
def clear_dir(path: str, dry_run: bool | None = None) -> None:
    """Remove every item inside a directory but keep the directory itself"""
    for item in os.listdir(path):
        remove(os.path.join(path, item))


@_support_dry_run(lambda src, dst: f"[avr-gdb] Rename {src} -> {dst}.")
@_check_os_error("rename")
def rename(src: str, dst: str, dry_run: bool | None = None) -> None:
    os.rename(src, dst)


def failure_report(error: BaseException) -> str:
    """Describe a failure: the failing command, the call chain from innermost to outermost and the working directory

    Args:
        error (BaseException): The error which terminated the build

    Returns:
        str: Multi-line diagnostic text
    """
    command = getattr(error, "command", None)
    chain = list(traceback.extract_tb(error.__traceback__))
    cause = error.__cause__
    # A wrapped error carries the frames below the point where it was wrapped
    while isinstance(cause, build_error):
        # The first frame of the cause is the frame which caught and wrapped it
        chain += traceback.extract_tb(cause.__traceback__)[1:]
        cause = cause.__cause__
    frames = list(reversed(chain))
    lines: list[str] = []
    if command is not None:
        caller = next((frame for frame in frames if frame.filename != __file__), None)
        lines.append(f"Failed at {caller.lineno if caller else '?'}: {command}")
    else:
        lines.append(f"Failed: {error}")
    if isinstance(error, stage_error):
        lines.append(f"  stage: {error.stage}")
    lines.append(f"  pwd: {getattr(error, 'cwd', None) or os.getcwd()}")
    for depth, frame in enumerate(frames, 1):
        lines.append(f"{' ' * depth}at: {frame.name}(), {frame.filename}, line {frame.lineno}")
    return "\n".join(lines)


def report_failure(error: build_error) -> int:
    """Print the diagnostic to stderr, log it and return the exit status"""
    report = failure_report(error)
    print(report, file=sys.stderr)
    _logger.error(report)
    return error.exit_code


def get_default_jobs() -> int:
    """Job count from $JOBCOUNT, falling back to the number of logical processors.
    A $JOBCOUNT which is not a number is left for the --jobs option to report.
    """
    jobs = os.environ.get("JOBCOUNT", "")
    if jobs.isdecimal():
        return int(jobs)
    return psutil.cpu_count() or 1


class basic_environment:
    """Basic environment shared by every build"""

    version: str  # Version of the debugger
    work_dir: str  # Directory holding archives and extracted sources
    jobs: int  # Number of parallel jobs
    current_dir: str  # Directory of these scripts
    name: str  # Name of the installed tree
    prefix: str  # Install location of the final tree

    def __init__(self, version: str, name: str, work_dir: str, prefix_dir: str, jobs: int) -> None:
        self.version = version
        self.name = name
        self.work_dir = work_dir
        self.jobs = jobs
        self.current_dir = os.path.abspath(os.path.dirname(__file__))
        self.prefix = os.path.join(prefix_dir, self.name)

    def compress(self) -> str:
        """Pack the installed tree into <name>.tar.xz next to it

        Returns:
            str: Path of the archive
        """
        prefix_dir = os.path.dirname(self.prefix)
        run_command(f"tar -cf {self.name}.tar {self.name}", cwd=prefix_dir)
        memory_MB = psutil.virtual_memory().available // 1048576 + 3072
        run_command(f"xz -fev9 -T 0 --memlimit={memory_MB}MiB {self.name}.tar", cwd=prefix_dir)
        return os.path.join(prefix_dir, f"{self.name}.tar.xz")


def _check_work_dir(work_dir: str) -> None:
    assert os.path.isdir(work_dir), f'The work dir "{work_dir}" does not exist.'


class basic_configure:
    work_dir: str  # Directory to download, extract and build sources in

    def __init__(self, work_dir: str | None = None) -> None:
        self.work_dir = os.path.abspath(work_dir or os.getcwd())

    @staticmethod
    def add_argument(parser: argparse.ArgumentParser) -> None:
        """Add the --work-dir, --export, --import and --dry-run options

        Args:
            parser (argparse.ArgumentParser): Command line parser
        """
        parser.add_argument("--work-dir", type=str, help="The directory to download, extract and build sources in.", default=os.getcwd())
        parser.add_argument("--export", dest="export_file", type=str, help="Export settings to specific file.")
        parser.add_argument("--import", dest="import_file", type=str, help="Import settings from specific file.")
        parser.add_argument(
            "--dry-run",
            dest="dry_run",
            action=argparse.BooleanOptionalAction,
            help="Preview the commands without actually executing them.",
            default=False,
        )

    @classmethod
    def parse_args(cls, args: argparse.Namespace):
        command_dry_run.set(args.dry_run)
        args_list = vars(args)
        parma_list: list = []
        for parma in itertools.islice(inspect.signature(cls.__init__).parameters.keys(), 1, None):
            assert parma in args_list, f"The parma {parma} is not in args. Every parma except self should be able to find in args."
            parma_list.append(args_list[parma])
        return cls(*parma_list)

    def save_config(self, args: argparse.Namespace) -> None:
        """Save the settings to a file in json format

        Args:
            args (argparse.Namespace): Command line arguments

        Raises:
            RuntimeError: Saving failed
        """
        export_file: str | None = args.export_file
        if export_file:
            try:
                with open(export_file, "w") as file:
                    json.dump(vars(self), file, indent=4)
                print(f'[avr-gdb] Settings have been written to file "{export_file}"')
            except OSError as e:
                raise RuntimeError(f"Export settings failed: {e}")

    def load_config(self, args: argparse.Namespace) -> None:
        """Load settings from a file and merge them with the settings given on the command line.
        A value given on the command line wins over the loaded one.

        Args:
            args (argparse.Namespace): Command line arguments

        Raises:
            RuntimeError: Loading failed
        """
        import_file: str | None = args.import_file
        if import_file:
            try:
                with open(import_file) as file:
                    import_config_list = json.load(file)
            except (OSError, ValueError) as e:
                raise RuntimeError(f'Import file "{import_file}" failed: {e}')
            if not isinstance(import_config_list, dict):
                raise RuntimeError(f'Invalid configure file "{import_file}".')
            current_config_list = vars(self)
            default_config_list = vars(type(self)())
            self.__dict__ = {
                # Keys missing from the file fall back to the defaults so old files keep loading
                key: (import_config_list.get(key, default_config_list[key]) if value == default_config_list[key] else value)
                for key, value in current_config_list.items()
            }


assert __name__ != "__main__", "Import this file instead of running it directly."
