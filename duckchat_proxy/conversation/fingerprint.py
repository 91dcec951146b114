"""Deterministic digests over conversation text and model names."""

import hashlib
from typing import Sequence

# Join character between turns. Changing it orphans every cached mapping.
TURN_SEPARATOR = ","


def conversation_fingerprint(contents: Sequence[str]) -> str:
    """Return the SHA-256 hex digest of ``contents`` joined with a comma.

    Order-sensitive and exact: any difference in content, including
    whitespace, yields a different key. Roles are not part of the digest.
    """
    joined = TURN_SEPARATOR.join(contents)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def model_fingerprint(model: str) -> str:
    """Synthesize a ``system_fingerprint`` value for ``model``.

    duckchat does not report one; this is a stable stand-in derived from the
    model name and carries no upstream meaning.
    """
    digest = hashlib.sha1(model.encode("utf-8")).hexdigest()
    return f"fp_{digest[:9]}"
