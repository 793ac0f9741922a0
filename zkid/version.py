"""
Version of the zkid package.

Can be overridden at build time with the env var ZKID_VERSION.
"""

from __future__ import annotations

import os

__version__ = os.getenv("ZKID_VERSION", "0.1.0")


def runtime_banner() -> str:
    return f"zkid {__version__}"


__all__ = ["__version__", "runtime_banner"]
