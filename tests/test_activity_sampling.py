"""
tests/test_activity_sampling.py
Activity classification and the activity → distance filter table.
"""

from unittest.mock import MagicMock

import pytest

from pinpoint.activity import ActivityClassifierAdapter, classify, sample_for
from pinpoint.models.state import ActivityCategory, MotionActivity
from pinpoint.sampling import DEFAULT_THRESHOLD_M, SamplingController, threshold
from pinpoint.sources.external import ExternalMotionSource, ExternalPositionSource


class TestThresholdTable:

    @pytest.mark.parametrize("category,meters", [
        (ActivityCategory.WALKING,    10),
        (ActivityCategory.RUNNING,    10),
        (ActivityCategory.UNKNOWN,    10),
        (ActivityCategory.CYCLING,    15),
        (ActivityCategory.AUTOMOTIVE, 20),
        (ActivityCategory.STATIONARY, 50),
    ])
    def test_table(self, category, meters):
        assert threshold(category) == meters

    @pytest.mark.parametrize("value", ['flying', None, 42])
    def test_unmapped_values_fall_back_to_default(self, value):
        assert threshold(value) == DEFAULT_THRESHOLD_M == 10


class TestSamplingController:

    def test_default_filter_applied_at_construction(self):
        source = ExternalPositionSource()
        SamplingController(source)
        assert source.distance_filter_m == 10

    def test_every_classification_is_applied(self):
        source = MagicMock()
        controller = SamplingController(source)
        for category in ['cycling', 'cycling', 'stationary']:
            controller.on_activity(ActivityCategory(category))
        assert controller.applied == 3
        assert [c.args[0] for c in source.set_distance_filter.call_args_list] == [10, 15, 15, 50]

    def test_flapping_signal_flaps_threshold(self):
        source = ExternalPositionSource()
        controller = SamplingController(source)
        applied = []
        for category in ['walking', 'automotive', 'walking', 'automotive']:
            applied.append(controller.on_activity(ActivityCategory(category)))
        assert applied == [10, 20, 10, 20]
        assert source.distance_filter_m == 20


class TestClassify:

    def test_automotive_beats_stationary(self):
        assert classify(MotionActivity(automotive=True, stationary=True)) == ActivityCategory.AUTOMOTIVE

    @pytest.mark.parametrize("flags,expected", [
        (dict(cycling=True, running=True),    ActivityCategory.CYCLING),
        (dict(running=True, walking=True),    ActivityCategory.RUNNING),
        (dict(walking=True, stationary=True), ActivityCategory.WALKING),
        (dict(stationary=True, unknown=True), ActivityCategory.STATIONARY),
        (dict(unknown=True),                  ActivityCategory.UNKNOWN),
        (dict(),                              ActivityCategory.UNKNOWN),
    ])
    def test_priority(self, flags, expected):
        assert classify(MotionActivity(**flags)) == expected

    @pytest.mark.parametrize("category", list(ActivityCategory))
    def test_sample_for_classifies_back(self, category):
        assert classify(sample_for(category)) == category


class TestActivityClassifierAdapter:

    def test_unavailable_source_stays_unknown(self):
        adapter = ActivityClassifierAdapter(ExternalMotionSource(available=False))
        assert adapter.start() is False
        assert not adapter.is_monitoring
        assert adapter.current == ActivityCategory.UNKNOWN

    def test_samples_flow_only_while_monitoring(self):
        source = ExternalMotionSource()
        adapter = ActivityClassifierAdapter(source)
        seen = []
        adapter.add_listener(seen.append)

        assert source.push_activity(sample_for('cycling')) is False
        adapter.start()
        source.push_activity(sample_for('cycling'))
        adapter.stop()
        source.push_activity(sample_for('automotive'))

        assert seen == [ActivityCategory.CYCLING]
        assert adapter.current == ActivityCategory.CYCLING

    def test_repeated_category_still_notifies(self):
        adapter = ActivityClassifierAdapter(ExternalMotionSource())
        seen = []
        adapter.add_listener(seen.append)
        adapter.on_category('walking')
        adapter.on_category('walking')
        assert seen == [ActivityCategory.WALKING, ActivityCategory.WALKING]

    def test_last_raw_sample_kept(self):
        adapter = ActivityClassifierAdapter(ExternalMotionSource())
        sample = MotionActivity(automotive=True, stationary=True, confidence='high')
        adapter.on_activity(sample)
        assert adapter.last_activity is sample
        assert adapter.current == ActivityCategory.AUTOMOTIVE
