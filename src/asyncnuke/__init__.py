"""AsyncNuke - Concurrent bulk deleter for large filesystem trees."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("asyncnuke")
except PackageNotFoundError:
    # Package not installed, fall back to reading pyproject.toml
    try:
        import tomllib
        from pathlib import Path

        pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            with open(pyproject_path, "rb") as f:
                pyproject = tomllib.load(f)
                __version__ = pyproject["project"]["version"]
        else:
            __version__ = "unknown"
    except Exception:
        __version__ = "unknown"
