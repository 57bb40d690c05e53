"""Package version, from installed metadata or the source checkout's pyproject.toml."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version as _dist_version

import tomllib

from personasim.paths import get_repo_root


def get_app_version(package_name: str = "personasim") -> str:
    try:
        return _dist_version(package_name)
    except PackageNotFoundError:
        pyproject = get_repo_root() / "pyproject.toml"
        try:
            with pyproject.open("rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError):
            return "0.0.0"
        return str(data.get("project", {}).get("version", "0.0.0"))
