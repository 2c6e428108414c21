"""
pinpoint/activity.py
Activity Classifier Adapter. Reduces raw motion samples to one coarse
ActivityCategory. Only the latest classification is kept.
"""

import logging
from typing import Callable, List, Optional

from pinpoint.models.state import ActivityCategory, MotionActivity
from pinpoint.sources.base import ActivityHandler, MotionSource

logger = logging.getLogger(__name__)

CategoryListener = Callable[[ActivityCategory], None]

# Several flags can be set together (stationary + automotive at a red light).
# The first match in this order wins.
CLASSIFICATION_ORDER = (
    ('automotive', ActivityCategory.AUTOMOTIVE),
    ('cycling',    ActivityCategory.CYCLING),
    ('running',    ActivityCategory.RUNNING),
    ('walking',    ActivityCategory.WALKING),
    ('stationary', ActivityCategory.STATIONARY),
)


def classify(activity: MotionActivity) -> ActivityCategory:
    for flag, category in CLASSIFICATION_ORDER:
        if getattr(activity, flag):
            return category
    return ActivityCategory.UNKNOWN


def sample_for(category, confidence: str = 'low', timestamp: float = 0.0) -> MotionActivity:
    """Single-flag motion sample that classifies back to category."""
    category = ActivityCategory(category)
    return MotionActivity(confidence=confidence, timestamp=timestamp, **{category.value: True})


class ActivityClassifierAdapter:

    def __init__(self, source: MotionSource, intake: Optional[ActivityHandler] = None):
        """
        intake: handler given to the motion source. The coordinator passes a
                function that posts onto the dispatcher; defaults to
                on_activity for direct use.
        """
        self.source        = source
        self.current       = ActivityCategory.UNKNOWN
        self.last_activity: Optional[MotionActivity] = None
        self.is_monitoring = False
        self._intake       = intake
        self._listeners: List[CategoryListener] = []

    def add_listener(self, listener: CategoryListener) -> None:
        self._listeners.append(listener)

    def start(self) -> bool:
        if self.is_monitoring:
            return True
        if not self.source.is_available():
            logger.warning("Motion activity not available on this device — staying at 'unknown'")
            return False
        self.source.start_updates(self._intake or self.on_activity)
        self.is_monitoring = True
        logger.info("Motion activity updates started")
        return True

    def stop(self) -> None:
        if not self.is_monitoring:
            return
        self.source.stop_updates()
        self.is_monitoring = False
        logger.info("Motion activity updates stopped")

    def on_activity(self, activity: MotionActivity) -> ActivityCategory:
        self.last_activity = activity
        return self.on_category(classify(activity))

    def on_category(self, category) -> ActivityCategory:
        """Apply an already-classified category."""
        category = ActivityCategory(category)
        if category != self.current:
            logger.info(f"Activity {self.current.value} → {category.value}")
        else:
            logger.debug(f"Activity still {category.value}")
        self.current = category
        for listener in list(self._listeners):
            listener(category)
        return category
