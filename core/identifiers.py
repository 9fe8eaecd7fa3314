"""
Core Module - Content-Addressed Identifiers.

============================================================
RESPONSIBILITY
============================================================
Deterministic identifiers for dedup-sensitive records.

Clusters, cases, abuse signals, action records and notices are
keyed by a digest of what they describe rather than by time and
randomness. Repeated or concurrent runs over the same condition
therefore land on the same row and upsert instead of duplicating.

============================================================
ID FORMATS
============================================================
- cl_<digest>      cluster       sorted account set
- fc_<digest>      farming case  sorted account set
- as_<digest>      abuse signal  rule + user + window bucket
- act_<digest>     action record signal + target + action
- notice_<digest>  user notice   signal + user

============================================================
"""

import hashlib
from datetime import datetime, timedelta
from typing import Iterable


DIGEST_LENGTH = 20


def digest(*parts: str) -> str:
    """Stable hex digest over ordered string parts."""
    hasher = hashlib.sha256()
    for part in parts:
        hasher.update(part.encode("utf-8"))
        hasher.update(b"\x1f")
    return hasher.hexdigest()[:DIGEST_LENGTH]


def account_set_key(account_ids: Iterable[str]) -> str:
    """Canonical key for an unordered account set."""
    return ",".join(sorted(set(account_ids)))


def cluster_id_for(account_ids: Iterable[str]) -> str:
    return f"cl_{digest('cluster', account_set_key(account_ids))}"


def case_id_for(account_ids: Iterable[str]) -> str:
    return f"fc_{digest('case', account_set_key(account_ids))}"


def window_bucket(at: datetime, window: timedelta) -> int:
    """
    Index of the fixed window that contains `at`.
    
    Two detections of the same rule for the same user inside one
    window share a bucket and therefore an identifier.
    """
    seconds = max(1, int(window.total_seconds()))
    return int(at.timestamp()) // seconds


def abuse_signal_id_for(
    rule_type: str,
    user_id: str,
    detected_at: datetime,
    window: timedelta,
) -> str:
    bucket = window_bucket(detected_at, window)
    return f"as_{digest('abuse', rule_type, user_id, str(bucket))}"


def action_record_id_for(signal_id: str, target_id: str, action: str) -> str:
    return f"act_{digest('action', signal_id, target_id, action)}"


def notice_id_for(signal_id: str, user_id: str) -> str:
    return f"notice_{digest('notice', signal_id, user_id)}"


__all__ = [
    "digest",
    "account_set_key",
    "cluster_id_for",
    "case_id_for",
    "window_bucket",
    "abuse_signal_id_for",
    "action_record_id_for",
    "notice_id_for",
]
