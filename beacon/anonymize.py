"""One-way tokens for identifying strings (plugin names, file names).

Tokens are the base64 MD5 digest of the UTF-8 text. No salt, so the
receiving side can correlate the same plugin across reports and
clients without ever seeing its name.
"""
from __future__ import annotations

import base64
import hashlib


def create_hashes(text: str) -> tuple[str, int]:
    """Return (base64 token, 64-bit numeric hash) for text.

    The numeric hash is the first 8 digest bytes read big-endian.
    """
    digest = hashlib.md5(text.encode("utf-8")).digest()
    token = base64.b64encode(digest).decode("ascii")
    numeric = int.from_bytes(digest[:8], "big")
    return token, numeric


def anonymize(text: str) -> str:
    return create_hashes(text or "")[0]


def numeric_hash(text: str) -> int:
    return create_hashes(text or "")[1]
