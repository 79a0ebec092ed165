"""Security utilities — key masking, logging suppression and output path checks.

No raw secret may appear in any report, log line or API response. Everything that
leaves the core goes through mask_key() first.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

DEFAULT_MASK_PREFIX = 4
DEFAULT_MASK_SUFFIX = 4


def mask_key(secret: str, prefix_len: int = DEFAULT_MASK_PREFIX,
             suffix_len: int = DEFAULT_MASK_SUFFIX) -> str:
    """Display-safe rendering of a secret: ``abcd...wxyz`` or ``abcd...`` when short."""
    secret = secret or ""
    if len(secret) <= prefix_len + suffix_len:
        return f"{secret[:prefix_len]}..."
    tail = secret[len(secret) - suffix_len:] if suffix_len else ""
    return f"{secret[:prefix_len]}...{tail}"


def suppress_credential_logging() -> None:
    """Prevent httpx/httpcore from logging bearer headers at DEBUG level."""
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def check_output_permissions(path: Path, force: bool = False) -> bool:
    """Return True if safe to write. Refuses symlinks. Refuses world-readable targets unless forced."""
    if path.is_symlink():
        return False
    if not path.exists():
        return True
    mode = os.stat(path).st_mode
    if mode & stat.S_IROTH:
        return force
    return True
