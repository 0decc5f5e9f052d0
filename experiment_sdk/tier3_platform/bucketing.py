"""
experiment_sdk.tier3_platform.bucketing
───────────────────────────────────────
Deterministic bucketing. A visitor's position in an experiment is a pure
function of (visitor_id, experiment_id): SHA-256 of the joined ids, first
8 bytes read as an unsigned big-endian integer, keeping the top 53 bits
and dividing by 2**53 so the float is exact. The result is uniform on
[0, 1), identical in every process, and needs no stored randomness
beyond the visitor id itself.

Two independent values are derived per experiment:
  - bucket_value:          the inclusion gate (traffic percentage)
  - variant_bucket_value:  the variant walk, salted with ":variant"

Keeping them independent means widening an experiment's traffic never
reshuffles which variant an already-included visitor falls into.
"""
from __future__ import annotations

import hashlib
from collections.abc import Sequence

from experiment_sdk.tier3_platform.models import Experiment, Variant

_SEPARATOR = ":"
_VARIANT_SALT = "variant"
_PREFIX_BYTES = 8
# A double holds 53 bits; dropping the low 11 keeps the quotient strictly below 1.0
_DROP_BITS = 8 * _PREFIX_BYTES - 53
_SCALE = float(2 ** 53)


def _hash_to_unit(*parts: str) -> float:
    digest = hashlib.sha256(_SEPARATOR.join(parts).encode("utf-8")).digest()
    return (int.from_bytes(digest[:_PREFIX_BYTES], "big") >> _DROP_BITS) / _SCALE


def bucket_value(visitor_id: str, experiment_id: str) -> float:
    """Stable value in [0, 1) deciding whether the visitor enters the experiment."""
    return _hash_to_unit(visitor_id, experiment_id)


def variant_bucket_value(visitor_id: str, experiment_id: str) -> float:
    """Stable value in [0, 1) choosing the variant, independent of bucket_value."""
    return _hash_to_unit(visitor_id, experiment_id, _VARIANT_SALT)


def is_included(bucket: float, traffic_percentage: float) -> bool:
    """Inclusion gate: the visitor is in when ``bucket * 100 < traffic_percentage``."""
    return bucket * 100 < traffic_percentage


def select_variant(variants: Sequence[Variant], bucket: float) -> Variant | None:
    """
    Walk *variants* in order, accumulating their weights, and return the
    first whose cumulative share exceeds *bucket*.

    Weights are relative: 60/40, 3/2 and 120/80 split traffic identically.
    When the walk is never satisfied (all weights zero, or float rounding
    at the top end) the last variant is returned. An empty list yields None.
    """
    if not variants:
        return None

    total = sum(max(v.traffic_percentage, 0.0) for v in variants)
    if total <= 0:
        return variants[-1]

    threshold = bucket * total
    cumulative = 0.0
    for variant in variants:
        cumulative += max(variant.traffic_percentage, 0.0)
        if cumulative > threshold:
            return variant

    return variants[-1]


def assign(experiment: Experiment, visitor_id: str) -> Variant | None:
    """
    Full bucketing decision for one experiment: None when the visitor is
    outside the traffic allocation or the experiment has no variants.
    """
    if not is_included(bucket_value(visitor_id, experiment.id), experiment.traffic_percentage):
        return None
    return select_variant(experiment.variants, variant_bucket_value(visitor_id, experiment.id))


__all__ = [
    "bucket_value",
    "variant_bucket_value",
    "is_included",
    "select_variant",
    "assign",
]
