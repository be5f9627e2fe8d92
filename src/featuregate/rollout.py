"""Deterministic rollout buckets keyed by (flag, subject).

Hashing the subject alone would put the same users first in line for every
flag; mixing the flag key in gives each flag an independent population.
"""

from __future__ import annotations

import hashlib

BUCKETS = 100


def bucket(flag_key: str, subject_id: str) -> int:
    """Return the subject's position in [0, 100) for this flag."""
    digest = hashlib.md5(f"{flag_key}:{subject_id}".encode("utf-8"), usedforsecurity=False).hexdigest()
    return int(digest, 16) % BUCKETS


def in_rollout(flag_key: str, subject_id: str, percentage: int) -> bool:
    if percentage <= 0:
        return False
    if percentage >= BUCKETS:
        return True
    return bucket(flag_key, subject_id) < percentage
