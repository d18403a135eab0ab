import unittest
from unittest.mock import Mock

from errors import SceneDetectionError
from vertical.sampling import (
    build_sample_timestamps,
    fill_long_gaps,
    filter_scene_candidates,
    sample_timestamps,
)


def _strictly_increasing(values):
    return all(a < b for a, b in zip(values, values[1:]))


class TestSampleTimestamps(unittest.TestCase):
    def test_uniform_sampling_when_scene_detection_fails(self):
        failing_detector = Mock(side_effect=SceneDetectionError("ffmpeg missing"))
        timestamps = sample_timestamps("input.mp4", 100.0, failing_detector)
        self.assertEqual(timestamps, [0.5, 15.0, 30.0, 45.0, 60.0, 75.0, 90.0, 98.0])
        failing_detector.assert_called_once_with("input.mp4")

    def test_any_detector_exception_degrades_to_uniform(self):
        timestamps = sample_timestamps("input.mp4", 100.0, Mock(side_effect=RuntimeError("boom")))
        self.assertIn(0.5, timestamps)
        self.assertIn(98.0, timestamps)

    def test_no_scene_changes_behaves_like_uniform(self):
        self.assertEqual(build_sample_timestamps(100.0, []), build_sample_timestamps(100.0, None))

    def test_many_scene_changes_are_downsampled(self):
        scene_changes = [float(i) for i in range(1, 200)]
        timestamps = build_sample_timestamps(200.0, scene_changes)
        self.assertEqual(len(timestamps), 25)
        self.assertEqual(timestamps[0], 0.5)
        self.assertEqual(timestamps[-1], 198.0)
        self.assertTrue(_strictly_increasing(timestamps))

    def test_long_gaps_between_scenes_get_intermediate_samples(self):
        timestamps = build_sample_timestamps(120.0, [10.0, 20.0, 100.0])
        self.assertEqual(timestamps, [0.5, 10.0, 20.0, 46.667, 73.333, 100.0, 118.0])

    def test_few_scene_changes_merge_with_uniform(self):
        timestamps = build_sample_timestamps(100.0, [37.0])
        self.assertIn(37.0, timestamps)
        self.assertIn(15.0, timestamps)
        self.assertIn(98.0, timestamps)
        self.assertTrue(_strictly_increasing(timestamps))

    def test_short_video_reaches_minimum(self):
        for duration in (1.0, 3.0, 7.5):
            timestamps = build_sample_timestamps(duration, None)
            self.assertGreaterEqual(len(timestamps), 5, duration)
            self.assertIn(0.5, timestamps)
            self.assertIn(round(max(0.5, duration - 2), 3), timestamps)
            self.assertTrue(_strictly_increasing(timestamps))
            self.assertTrue(all(0 <= ts <= duration for ts in timestamps))

    def test_scene_changes_past_the_end_are_ignored(self):
        timestamps = build_sample_timestamps(60.0, [10.0, 20.0, 30.0, 500.0])
        self.assertEqual(timestamps, [0.5, 10.0, 20.0, 30.0, 58.0])

    def test_zero_duration(self):
        self.assertEqual(build_sample_timestamps(0, None), [0.0])

    def test_bounds_hold_for_various_durations(self):
        for duration in (10.0, 45.0, 300.0, 3600.0):
            timestamps = build_sample_timestamps(duration, None)
            self.assertGreaterEqual(len(timestamps), 5)
            self.assertLessEqual(len(timestamps), 25)
            self.assertEqual(timestamps[0], 0.5)
            self.assertEqual(timestamps[-1], duration - 2)


class TestSceneCandidates(unittest.TestCase):
    def test_close_candidates_are_dropped(self):
        self.assertEqual(filter_scene_candidates([2.0, 1.0, 4.0, 5.0, 8.5]), [4.0, 8.5])

    def test_fill_long_gaps_leaves_short_gaps(self):
        self.assertEqual(fill_long_gaps([0.0, 20.0, 40.0]), [0.0, 20.0, 40.0])
        self.assertEqual(fill_long_gaps([0.0, 90.0]), [0.0, 22.5, 45.0, 67.5, 90.0])


if __name__ == "__main__":
    unittest.main()
