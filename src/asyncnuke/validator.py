"""Validation of user supplied arguments before anything is deleted."""

import glob
import os

MIN_BUFFER_SIZE = 100
MAX_BUFFER_SIZE = 2000
MIN_THREADS = 1
MAX_THREADS = 64

# Never purge these: device nodes, virtual filesystems and the OS itself live here
PROTECTED_PATHS = {
    "/proc",
    "/sys",
    "/dev",
    "/run",
    "/var/run",
    "/boot",
    "/bin",
    "/sbin",
    "/lib",
    "/lib64",
    "/usr/bin",
    "/usr/sbin",
    "/usr/lib",
    "/etc",
}


def has_wildcard(pattern: str) -> bool:
    """Return True if the pattern contains glob wildcards."""
    return any(char in pattern for char in "*?[")


def ensure_not_protected(path: str) -> None:
    """
    Refuse the filesystem root and anything inside a protected system directory.

    The path is made absolute but symlinks are not resolved, since only the
    link itself would be removed.

    Raises:
        ValueError: If the path is protected
    """
    absolute = os.path.abspath(path)
    if absolute == os.path.abspath(os.sep):
        raise ValueError("Refusing to delete the filesystem root")

    for protected in PROTECTED_PATHS:
        if absolute == protected or absolute.startswith(protected + "/"):
            raise ValueError(
                f"Refusing to delete system path: {absolute}. "
                f"This path is inside '{protected}' which contains critical system files."
            )


def validate_paths(patterns: list[str]) -> None:
    """
    Validate the paths and patterns to delete.

    A literal path must exist. A wildcard pattern may match nothing, but none
    of its matches may be protected.

    Raises:
        ValueError: If a literal path does not exist or any target is protected
    """
    if not patterns:
        raise ValueError("At least one path is required")

    for pattern in patterns:
        if has_wildcard(pattern):
            for match in glob.glob(pattern, include_hidden=True):
                ensure_not_protected(match)
        else:
            if not os.path.lexists(pattern):
                raise ValueError(f"Path '{pattern}' does not exist")
            ensure_not_protected(pattern)


def validate_log_dir(log_dir: str | None) -> None:
    """The log path must be an existing directory; the file name is generated."""
    if log_dir is not None and not os.path.isdir(log_dir):
        raise ValueError(
            f"Logfile path '{log_dir}' is not a directory or does not exist. Please provide a directory path."
        )


def validate_buffer_size(buffer_size: int) -> None:
    if buffer_size < MIN_BUFFER_SIZE or buffer_size > MAX_BUFFER_SIZE:
        raise ValueError(
            f"Invalid buffer size {buffer_size}. "
            f"The buffer size must be between {MIN_BUFFER_SIZE} and {MAX_BUFFER_SIZE}."
        )


def validate_thread_count(threads: int | None) -> None:
    if threads is not None and (threads < MIN_THREADS or threads > MAX_THREADS):
        raise ValueError(
            f"Invalid thread count {threads}. The thread count must be between {MIN_THREADS} and {MAX_THREADS}."
        )


def validate_args(paths: list[str], log_dir: str | None, buffer_size: int, threads: int | None) -> None:
    """
    Validate all command-line arguments.

    Raises:
        ValueError: On the first invalid argument
    """
    validate_paths(paths)
    validate_log_dir(log_dir)
    validate_buffer_size(buffer_size)
    validate_thread_count(threads)
