# File: riskguard/core/behavior/profile_builder.py

import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

import numpy as np

from riskguard.config.settings import BehavioralSettings
from riskguard.models.behavioral import BehaviorProfile, FieldStats
from riskguard.models.exceptions import CollaboratorUnavailable
from riskguard.models.interfaces import ICacheBackend, IRecordStore, RecordFilter
from riskguard.utils.serialization import utc_now

SAMPLES_COLLECTION = "behavior_samples"


def profile_cache_key(subject_id: str) -> str:
    return f"behavior_profile:{subject_id}"


def numeric_value(value: Any) -> Optional[float]:
    """Return `value` as a finite float, or None when it is not numeric.

    Booleans are categorical here, not 0/1. Numeric strings count, matching
    how form-collected timings usually arrive.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def compute_field_stats(values: Iterable[float]) -> FieldStats:
    """Summary statistics over one field.

    Quartiles are taken by index on the sorted values (`floor(n * p)`), not
    interpolated, so the median of an even-sized sample is the upper middle
    element.
    """
    ordered = np.sort(np.asarray(list(values), dtype=float))
    n = len(ordered)
    if n == 0:
        raise ValueError("cannot compute statistics over an empty sample")

    return FieldStats(
        mean=float(ordered.mean()),
        median=float(ordered[int(n * 0.5)]),
        std_dev=float(ordered.std()),  # population, ddof=0
        min=float(ordered[0]),
        max=float(ordered[-1]),
        q1=float(ordered[int(n * 0.25)]),
        q3=float(ordered[int(n * 0.75)]),
        sample_size=n,
    )


def compute_type_profile(field_maps: Iterable[Dict[str, Any]]) -> Dict[str, FieldStats]:
    """Per-field statistics for one behavior type; non-numeric values are skipped"""
    numeric_fields: Dict[str, List[float]] = defaultdict(list)
    for fields in field_maps:
        for name, value in (fields or {}).items():
            number = numeric_value(value)
            if number is not None:
                numeric_fields[name].append(number)

    return {name: compute_field_stats(values) for name, values in numeric_fields.items()}


class BehaviorProfileBuilder:
    """Builds and caches per-subject behavior profiles from stored samples.

    Profiles are rebuilt wholesale from the most recent samples in the
    learning window and cached for `profile_cache_ttl` seconds. Recording a
    new sample invalidates the cached copy; the next read rebuilds it.
    """

    def __init__(
        self,
        store: IRecordStore,
        cache: ICacheBackend,
        settings: Optional[BehavioralSettings] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.cache = cache
        self.settings = settings or BehavioralSettings()
        self._now = now
        self.logger = logging.getLogger(__name__)

    async def get_profile(self, subject_id: str) -> Optional[BehaviorProfile]:
        """Cached profile, rebuilt on miss; None when history is too thin.

        Raises:
            CollaboratorUnavailable: If the record store cannot be read
        """
        cache_key = profile_cache_key(subject_id)
        try:
            cached = await self.cache.get(cache_key)
        except CollaboratorUnavailable as e:
            self.logger.warning(f"Profile cache read failed for {subject_id}, rebuilding: {e}")
            cached = None

        if cached:
            try:
                return BehaviorProfile.model_validate(cached)
            except ValueError as e:
                self.logger.warning(f"Discarding malformed cached profile for {subject_id}: {e}")

        profile = await self.build_profile(subject_id)
        if profile is not None:
            try:
                await self.cache.set(cache_key, profile.model_dump(mode="json"), ttl=self.settings.profile_cache_ttl)
            except CollaboratorUnavailable as e:
                self.logger.warning(f"Profile cache write failed for {subject_id}: {e}")
        return profile

    async def build_profile(self, subject_id: str) -> Optional[BehaviorProfile]:
        since = self._now() - timedelta(days=self.settings.learning_period_days)
        records = await self.store.query(RecordFilter(
            collection=SAMPLES_COLLECTION,
            equals={"subject_id": subject_id},
            since=since,
            limit=self.settings.max_profile_samples,
            newest_first=True,
        ))

        if len(records) < self.settings.min_samples:
            self.logger.debug(
                f"Not enough samples for {subject_id}: {len(records)}/{self.settings.min_samples}"
            )
            return None

        grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for record in records:
            grouped[record["behavior_type"]].append(record.get("fields") or {})

        per_type = {behavior_type: compute_type_profile(samples) for behavior_type, samples in grouped.items()}
        self.logger.info(f"Built behavior profile for {subject_id} from {len(records)} samples")
        return BehaviorProfile(
            subject_id=subject_id,
            per_type=per_type,
            sample_count=len(records),
            built_at=self._now(),
        )

    async def invalidate(self, subject_id: str) -> None:
        await self.cache.delete(profile_cache_key(subject_id))
