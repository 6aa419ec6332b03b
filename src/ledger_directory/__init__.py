"""Ledger Directory: an application directory backed by a remote ledger.

The authoritative state of the directory (listings, reviews, ratings and
helpful-votes) lives on a remote append-only ledger reached through RPC calls.
This package keeps a local, read-only view of that state in step with the
ledger and drives write transactions through their submit / await-inclusion
lifecycle.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ---------------------------------------------------------------------------
# Package version, read from pyproject.toml via importlib.metadata.
#
# If the package is imported without being installed (running from a source
# checkout), fall back to the last released version.
# ---------------------------------------------------------------------------
try:
    __version__: str = version("ledger_directory")
except PackageNotFoundError:
    __version__ = "0.1.0"
