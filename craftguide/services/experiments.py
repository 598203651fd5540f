"""Deterministic A/B variant assignment.

A user always lands in the same variant of a given test, on every process
and every restart, because the bucket comes from a stable digest of the
test name and user id rather than from Python's salted ``hash``.
"""

import hashlib
from typing import Sequence

from loguru import logger

DEFAULT_VARIANTS = ("A", "B")


def ab_test_variant(user_id: str, test_name: str, variants: Sequence[str] = DEFAULT_VARIANTS) -> str:
    if not variants:
        raise ValueError("at least one variant is required")

    digest = hashlib.sha256(f"{test_name}:{user_id}".encode("utf-8")).digest()
    variant = variants[int.from_bytes(digest[:8], "big") % len(variants)]
    logger.debug(f"Variant assigned | test={test_name} user={user_id} variant={variant}")
    return variant


__all__ = ["DEFAULT_VARIANTS", "ab_test_variant"]
