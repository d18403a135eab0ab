import unittest

from vertical.planning import crops_are_static, plan_segments


def _keyframe(timestamp, x, y=0):
    return {"timestamp": timestamp, "crop": (x, y, 607, 1080), "reliable": True}


class TestPlanSegments(unittest.TestCase):
    def assertTiles(self, segments, duration):
        self.assertEqual(segments[0]["start"], 0.0)
        for current, following in zip(segments, segments[1:]):
            self.assertAlmostEqual(current["start"] + current["duration"], following["start"], places=3)
        last = segments[-1]
        self.assertAlmostEqual(last["start"] + last["duration"], duration, places=3)

    def test_keyframes_tile_whole_video(self):
        segments = plan_segments([_keyframe(0, 0), _keyframe(10, 300), _keyframe(20, 600)], 25)
        self.assertEqual(
            [(s["start"], s["duration"], s["crop_x"]) for s in segments],
            [(0.0, 10.0, 0), (10.0, 10.0, 300), (20.0, 5.0, 600)],
        )
        self.assertTiles(segments, 25)

    def test_first_segment_starts_at_zero(self):
        segments = plan_segments([_keyframe(0.5, 0), _keyframe(15, 300)], 30)
        self.assertEqual(segments[0]["start"], 0.0)
        self.assertEqual(segments[0]["duration"], 15.0)
        self.assertTiles(segments, 30)

    def test_short_segment_merges_into_previous(self):
        keyframes = [_keyframe(0.5, 0), _keyframe(10, 300), _keyframe(10.3, 600), _keyframe(20, 900)]
        segments = plan_segments(keyframes, 25)
        self.assertEqual([s["crop_x"] for s in segments], [0, 600, 900])
        self.assertEqual(segments[0]["duration"], 10.3)
        self.assertEqual(segments[1]["start"], 10.3)
        self.assertTrue(all(s["duration"] >= 0.5 for s in segments))
        self.assertTiles(segments, 25)

    def test_short_tail_merges_into_previous(self):
        segments = plan_segments([_keyframe(0, 0), _keyframe(10, 300), _keyframe(24.8, 600)], 25)
        self.assertEqual([s["crop_x"] for s in segments], [0, 300])
        self.assertTiles(segments, 25)

    def test_short_first_segment_merges_into_next(self):
        segments = plan_segments([_keyframe(0, 0), _keyframe(0.3, 300), _keyframe(12, 600)], 20)
        self.assertEqual([(s["start"], s["duration"], s["crop_x"]) for s in segments], [(0.0, 12.0, 300), (12.0, 8.0, 600)])
        self.assertTiles(segments, 20)

    def test_very_short_video_gets_one_segment(self):
        segments = plan_segments([_keyframe(0, 0)], 0.3)
        self.assertEqual(segments, [{"start": 0.0, "duration": 0.3, "crop_x": 0, "crop_y": 0}])

    def test_empty_keyframes(self):
        self.assertEqual(plan_segments([], 10), [])


class TestStaticCrop(unittest.TestCase):
    def test_single_keyframe_is_static(self):
        self.assertTrue(crops_are_static([_keyframe(0, 400)]))

    def test_within_margin_is_static(self):
        self.assertTrue(crops_are_static([_keyframe(0, 400, 10), _keyframe(10, 405, 5), _keyframe(20, 396, 14)]))

    def test_beyond_margin_is_not_static(self):
        self.assertFalse(crops_are_static([_keyframe(0, 400), _keyframe(10, 406)]))
        self.assertFalse(crops_are_static([_keyframe(0, 400, 0), _keyframe(10, 400, 6)]))


if __name__ == "__main__":
    unittest.main()
