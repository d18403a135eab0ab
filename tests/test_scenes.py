import subprocess
import sys
import unittest
from types import SimpleNamespace
from unittest.mock import Mock, patch

import scenes
from errors import SceneDetectionError

SHOWINFO_STDERR = """
[Parsed_showinfo_1 @ 0x7f] n:   0 pts:  64512 pts_time:5.04    duration:512 fmt:yuv420p
[Parsed_showinfo_1 @ 0x7f] n:   1 pts: 161280 pts_time:12.6    duration:512 fmt:yuv420p
[Parsed_showinfo_1 @ 0x7f] n:   2 pts: 161280 pts_time:12.6    duration:512 fmt:yuv420p
frame=    3 fps=0.0 q=-0.0 Lsize=N/A time=00:00:12.60
"""


class TestShowinfoParsing(unittest.TestCase):
    def test_extracts_unique_sorted_timestamps(self):
        self.assertEqual(scenes.parse_showinfo_timestamps(SHOWINFO_STDERR), [5.04, 12.6])

    def test_empty_output(self):
        self.assertEqual(scenes.parse_showinfo_timestamps(""), [])
        self.assertEqual(scenes.parse_showinfo_timestamps(None), [])


class TestDetectSceneBoundaries(unittest.TestCase):
    def test_ffmpeg_backend_uses_scene_score_filter(self):
        result = SimpleNamespace(stderr=SHOWINFO_STDERR, stdout="")
        with patch("scenes.subprocess.run", return_value=result) as run_mock:
            timestamps = scenes.detect_scene_boundaries("input.mp4", threshold=0.2)

        cmd = run_mock.call_args[0][0]
        self.assertEqual(cmd[cmd.index("-vf") + 1], "select='gt(scene,0.20)',showinfo")
        self.assertEqual(timestamps, [5.04, 12.6])

    def test_ffmpeg_failure_raises_scene_error(self):
        error = subprocess.CalledProcessError(1, ["ffmpeg"], stderr="Invalid data")
        with patch("scenes.subprocess.run", side_effect=error):
            with self.assertRaises(SceneDetectionError):
                scenes.detect_scene_boundaries("input.mp4")

    def test_missing_ffmpeg_raises_scene_error(self):
        with patch("scenes.subprocess.run", side_effect=FileNotFoundError("ffmpeg")):
            with self.assertRaises(SceneDetectionError):
                scenes.detect_scene_boundaries("input.mp4")

    def test_scenedetect_backend_skips_first_scene_start(self):
        def _timecode(seconds):
            return Mock(get_seconds=Mock(return_value=seconds))

        scene_list = [
            (_timecode(0.0), _timecode(4.0)),
            (_timecode(4.0), _timecode(9.5)),
            (_timecode(9.5), _timecode(20.0)),
        ]
        fake_module = SimpleNamespace(detect=Mock(return_value=scene_list), ContentDetector=Mock())
        with patch.dict(sys.modules, {"scenedetect": fake_module}):
            timestamps = scenes.detect_scene_boundaries("input.mp4", backend="scenedetect")

        self.assertEqual(timestamps, [4.0, 9.5])

    def test_scene_detector_closure(self):
        with patch("scenes.detect_scene_boundaries", return_value=[1.0]) as detect_mock:
            detector = scenes.make_scene_detector(0.3, "ffmpeg")
            self.assertEqual(detector("input.mp4"), [1.0])

        detect_mock.assert_called_once_with("input.mp4", threshold=0.3, backend="ffmpeg")


if __name__ == "__main__":
    unittest.main()
