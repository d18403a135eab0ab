# scenes.py — поиск смен сцен (ffmpeg scene score или PySceneDetect)

import re
import subprocess
import logging

from errors import SceneDetectionError

DEFAULT_SCENE_THRESHOLD = 0.20

_PTS_TIME_RE = re.compile(r"pts_time:([\d.]+)")


def parse_showinfo_timestamps(stderr_text):
    """
    Достает pts_time из вывода фильтра showinfo.
    Возвращает отсортированный список уникальных таймстемпов в секундах.
    """
    timestamps = set()
    for match in _PTS_TIME_RE.finditer(stderr_text or ""):
        try:
            timestamps.add(float(match.group(1)))
        except ValueError:
            continue
    return sorted(timestamps)


def _detect_with_ffmpeg(input_video, threshold):
    cmd = [
        "ffmpeg",
        "-i", input_video,
        "-vf", f"select='gt(scene,{threshold:.2f})',showinfo",
        "-vsync", "0",
        "-f", "null",
        "-",
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except (subprocess.CalledProcessError, OSError) as e:
        stderr = ""
        if getattr(e, "stderr", None):
            stderr = f" | stderr: {e.stderr.strip()[:300]}"
        raise SceneDetectionError(f"Ошибка при распознании сцен: {e}{stderr}") from e
    return parse_showinfo_timestamps(result.stderr)


def _detect_with_scenedetect(input_video):
    try:
        from scenedetect import detect, ContentDetector
    except ImportError as e:
        raise SceneDetectionError(f"PySceneDetect недоступен: {e}") from e
    try:
        scene_list = detect(input_video, ContentDetector(), show_progress=False)
    except Exception as e:
        raise SceneDetectionError(f"Ошибка при распознании сцен: {e}") from e
    # Начало первой сцены — это начало ролика, а не смена сцены.
    return [start.get_seconds() for start, _ in scene_list[1:]]


def detect_scene_boundaries(input_video, threshold=DEFAULT_SCENE_THRESHOLD, backend="ffmpeg"):
    """
    Возвращает таймстемпы смен сцен (секунды, по возрастанию).
    Ошибка движка -> SceneDetectionError.
    """
    if backend == "scenedetect":
        timestamps = _detect_with_scenedetect(input_video)
    else:
        timestamps = _detect_with_ffmpeg(input_video, threshold)
    logging.info("Движок %s нашел %s смен сцен", backend, len(timestamps))
    return timestamps


def make_scene_detector(threshold=DEFAULT_SCENE_THRESHOLD, backend="ffmpeg"):
    """Замыкание input_video -> [таймстемпы] для семплера."""
    def _detector(input_video):
        return detect_scene_boundaries(input_video, threshold=threshold, backend=backend)
    return _detector
