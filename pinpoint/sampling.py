"""
pinpoint/sampling.py
Sampling Controller — activity category → minimum distance between fixes.

No hysteresis: every classification is applied as it arrives, so a
flapping activity signal flaps the threshold.
"""

import logging

from pinpoint.models.state import ActivityCategory
from pinpoint.sources.base import PositionSource

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_M = 10

SAMPLE_THRESHOLDS_M = {
    ActivityCategory.WALKING:    10,
    ActivityCategory.RUNNING:    10,
    ActivityCategory.UNKNOWN:    10,
    ActivityCategory.CYCLING:    15,
    ActivityCategory.AUTOMOTIVE: 20,
    ActivityCategory.STATIONARY: 50,
}


def threshold(activity) -> int:
    """Meters for an activity. Anything unmapped falls back to DEFAULT_THRESHOLD_M."""
    try:
        category = ActivityCategory(activity)
    except ValueError:
        return DEFAULT_THRESHOLD_M
    return SAMPLE_THRESHOLDS_M.get(category, DEFAULT_THRESHOLD_M)


class SamplingController:

    def __init__(self, source: PositionSource):
        self.source      = source
        self.threshold_m = DEFAULT_THRESHOLD_M
        self.applied     = 0
        self.source.set_distance_filter(self.threshold_m)

    def on_activity(self, category) -> int:
        meters = threshold(category)
        if meters != self.threshold_m:
            logger.info(f"Distance filter {self.threshold_m}m → {meters}m ({getattr(category, 'value', category)})")
        self.threshold_m = meters
        self.source.set_distance_filter(meters)
        self.applied += 1
        return meters
