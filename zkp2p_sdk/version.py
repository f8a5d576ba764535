"""
Version of the installed zkp2p-sdk distribution.

A source checkout that was never installed has no distribution metadata,
so the version is read from the project's pyproject.toml instead.
"""
import importlib.metadata
import pathlib

import tomli

DISTRIBUTION = "zkp2p-sdk"
FALLBACK_VERSION = "0.3.0"
PYPROJECT = pathlib.Path(__file__).resolve().parent.parent / "pyproject.toml"


def _pyproject_version(path: pathlib.Path = PYPROJECT) -> str:
    try:
        with open(path, "rb") as f:
            return tomli.load(f)["project"]["version"]
    except (FileNotFoundError, KeyError, tomli.TOMLDecodeError):
        return FALLBACK_VERSION


def get_version() -> str:
    try:
        return importlib.metadata.version(DISTRIBUTION)
    except importlib.metadata.PackageNotFoundError:
        return _pyproject_version()


__version__ = get_version()
