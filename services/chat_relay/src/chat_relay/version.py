"""Installed distribution version of chat-relay."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

DISTRIBUTION = "chat-relay"

try:
    __version__ = version(DISTRIBUTION)
except PackageNotFoundError:  # running from a source checkout
    __version__ = "0.1.0-dev"
