import os
import tempfile
import unittest
from unittest.mock import patch

import utils


class TestTempFileManager(unittest.TestCase):
    def test_directory_is_removed_after_error(self):
        with tempfile.TemporaryDirectory() as base_dir:
            with self.assertRaises(RuntimeError):
                with utils.TempFileManager(base_dir=base_dir, prefix="frames_") as temp_files:
                    frame_path = temp_files.get_path("frame_0.jpg")
                    with open(frame_path, "wb") as f:
                        f.write(b"jpg")
                    raise RuntimeError("detector crashed")

            self.assertEqual(os.path.basename(frame_path), "frame_0.jpg")
            self.assertEqual(os.listdir(base_dir), [])

    def test_get_path_outside_context_fails(self):
        with self.assertRaises(RuntimeError):
            utils.TempFileManager().get_path("frame_0.jpg")


class TestSafeRemove(unittest.TestCase):
    def test_missing_file_is_ignored(self):
        utils.safe_remove("/nonexistent/segment_0.mp4")
        utils.safe_remove(None)

    def test_remove_error_is_logged_not_raised(self):
        with tempfile.NamedTemporaryFile(delete=False) as f:
            path = f.name
        try:
            with patch("utils.os.remove", side_effect=PermissionError("busy")), \
                 patch("utils.logging.warning") as warning_mock:
                utils.safe_remove(path)
            warning_mock.assert_called_once()
        finally:
            os.remove(path)


if __name__ == "__main__":
    unittest.main()
