import json
import os
import tempfile
import unittest
from unittest.mock import patch

import settings


class TestSettings(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.settings_file = os.path.join(self._tmp.name, "settings.json")

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, payload):
        with open(self.settings_file, "w", encoding="utf-8") as f:
            if isinstance(payload, str):
                f.write(payload)
            else:
                json.dump(payload, f)

    def test_missing_file_gives_defaults(self):
        loaded = settings.load_settings(self.settings_file, use_env=False)
        self.assertEqual(loaded, settings.DEFAULT_SETTINGS)

    def test_file_values_override_defaults(self):
        self._write({"target_width": 720, "target_height": 1280, "detect_faces": False})
        loaded = settings.load_settings(self.settings_file, use_env=False)
        self.assertEqual(settings.get_target_size(loaded), (720, 1280))
        self.assertFalse(loaded["detect_faces"])
        self.assertEqual(loaded["render_workers"], 4)

    def test_corrupt_file_gives_defaults(self):
        self._write("{not json")
        loaded = settings.load_settings(self.settings_file, use_env=False)
        self.assertEqual(loaded, settings.DEFAULT_SETTINGS)

    def test_invalid_values_are_normalized(self):
        self._write({
            "target_width": -5,
            "render_workers": "many",
            "detector_backend": "yolo",
            "scene_backend": "magic",
            "scene_threshold": 3,
        })
        loaded = settings.load_settings(self.settings_file, use_env=False)
        self.assertEqual(loaded["target_width"], 1080)
        self.assertEqual(loaded["render_workers"], 4)
        self.assertEqual(loaded["detector_backend"], "auto")
        self.assertEqual(loaded["scene_backend"], "ffmpeg")
        self.assertEqual(loaded["scene_threshold"], 0.20)

    def test_environment_overrides_file(self):
        self._write({"detector_backend": "yunet", "output_directory": "from-file"})
        env = {
            "FACEIFY_DETECTOR_BACKEND": "haar",
            "FACEIFY_RENDER_WORKERS": "2",
            "FACEIFY_DETECT_FACES": "false",
        }
        with patch.dict(os.environ, env), patch("settings.load_dotenv"):
            loaded = settings.load_settings(self.settings_file)

        self.assertEqual(loaded["detector_backend"], "haar")
        self.assertEqual(loaded["render_workers"], 2)
        self.assertFalse(loaded["detect_faces"])
        self.assertEqual(settings.get_output_directory(loaded), "from-file")

    def test_update_setting_persists(self):
        settings.update_setting("encode_preset", "slow", self.settings_file)
        loaded = settings.load_settings(self.settings_file, use_env=False)
        self.assertEqual(loaded["encode_preset"], "slow")

        settings.reset_settings(self.settings_file)
        self.assertEqual(settings.load_settings(self.settings_file, use_env=False)["encode_preset"], "veryfast")


if __name__ == "__main__":
    unittest.main()
