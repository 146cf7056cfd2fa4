"""Version of the installed code-repair-loop distribution."""

import tomllib
from importlib import metadata
from pathlib import Path

DISTRIBUTION = "code-repair-loop"
PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"


def resolve_version() -> str:
    """Installed metadata first, then the source checkout's pyproject.toml.

    Raises:
        RuntimeError: If neither source is available
    """
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        pass

    if not PYPROJECT.is_file():
        raise RuntimeError(f"{DISTRIBUTION} is not installed and {PYPROJECT} is missing")
    project = tomllib.loads(PYPROJECT.read_text())
    return str(project["tool"]["poetry"]["version"])


__version__ = resolve_version()

__all__ = ["__version__"]
