# settings.py — настройки конвертации

import json
import os
import logging

from dotenv import load_dotenv

SETTINGS_FILE = "faceify_settings.json"

DEFAULT_SETTINGS = {
    "output_directory": "converted-videos",
    "target_width": 1080,
    "target_height": 1920,
    "detect_faces": True,
    "detector_backend": "auto",
    "scene_backend": "ffmpeg",
    "scene_threshold": 0.20,
    "render_workers": 4,
    "encode_preset": "veryfast",
    "model_dir": os.path.join("cache", "models"),
    "use_timeline_cache": True,
}

_SUPPORTED_DETECTOR_BACKENDS = {"auto", "yunet", "haar"}
_SUPPORTED_SCENE_BACKENDS = {"ffmpeg", "scenedetect"}

# Переменные окружения, которые перекрывают значения из файла.
ENV_OVERRIDES = {
    "FACEIFY_OUTPUT_DIR": "output_directory",
    "FACEIFY_TARGET_WIDTH": "target_width",
    "FACEIFY_TARGET_HEIGHT": "target_height",
    "FACEIFY_DETECT_FACES": "detect_faces",
    "FACEIFY_DETECTOR_BACKEND": "detector_backend",
    "FACEIFY_SCENE_BACKEND": "scene_backend",
    "FACEIFY_RENDER_WORKERS": "render_workers",
    "FACEIFY_MODEL_DIR": "model_dir",
}


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _positive_int(value, default):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _normalize_settings(settings):
    """Приводит значения к ожидаемым типам, некорректные сбрасывает к дефолтам."""
    normalized = dict(settings)
    for key in ("target_width", "target_height", "render_workers"):
        value = _positive_int(normalized.get(key), DEFAULT_SETTINGS[key])
        if value != normalized.get(key):
            logging.warning("Некорректное значение %s=%r, использую %s.", key, normalized.get(key), value)
        normalized[key] = value

    normalized["detect_faces"] = _parse_bool(normalized.get("detect_faces", True))
    normalized["use_timeline_cache"] = _parse_bool(normalized.get("use_timeline_cache", True))

    backend = (normalized.get("detector_backend") or "").strip().lower()
    if backend not in _SUPPORTED_DETECTOR_BACKENDS:
        logging.warning("Неизвестный detector_backend '%s', использую auto.", normalized.get("detector_backend"))
        backend = DEFAULT_SETTINGS["detector_backend"]
    normalized["detector_backend"] = backend

    scene_backend = (normalized.get("scene_backend") or "").strip().lower()
    if scene_backend not in _SUPPORTED_SCENE_BACKENDS:
        logging.warning("Неизвестный scene_backend '%s', использую ffmpeg.", normalized.get("scene_backend"))
        scene_backend = DEFAULT_SETTINGS["scene_backend"]
    normalized["scene_backend"] = scene_backend

    try:
        threshold = float(normalized.get("scene_threshold"))
    except (TypeError, ValueError):
        threshold = DEFAULT_SETTINGS["scene_threshold"]
    if not 0.0 < threshold < 1.0:
        threshold = DEFAULT_SETTINGS["scene_threshold"]
    normalized["scene_threshold"] = threshold
    return normalized


def _apply_env_overrides(settings):
    for env_name, key in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None or value == "":
            continue
        settings[key] = value
    return settings


def load_settings(settings_file=None, use_env=True):
    """
    Загружает настройки из JSON-файла поверх дефолтов.
    Переменные окружения (и .env) перекрывают значения из файла.
    """
    path = settings_file or SETTINGS_FILE
    settings = DEFAULT_SETTINGS.copy()

    if os.path.exists(path):
        try:
            with open(path, 'r', encoding='utf-8') as f:
                stored = json.load(f)
            if isinstance(stored, dict):
                settings.update(stored)
            else:
                logging.warning("Файл настроек %s не содержит объект, использую дефолты.", path)
        except Exception as e:
            logging.warning(f"Ошибка загрузки настроек: {e}")

    if use_env:
        load_dotenv()
        _apply_env_overrides(settings)

    return _normalize_settings(settings)


def save_settings(settings, settings_file=None):
    """
    Сохраняет настройки в файл.
    """
    path = settings_file or SETTINGS_FILE
    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(settings, f, indent=2, ensure_ascii=False)
    except Exception as e:
        logging.error(f"Ошибка сохранения настроек: {e}")


def reset_settings(settings_file=None):
    """
    Сбрасывает настройки к значениям по умолчанию.
    """
    save_settings(DEFAULT_SETTINGS.copy(), settings_file)


def update_setting(key, value, settings_file=None):
    """
    Обновляет отдельную настройку.
    """
    settings = load_settings(settings_file, use_env=False)
    settings[key] = value
    save_settings(settings, settings_file)


def get_target_size(settings):
    """Получить целевой размер кадра (ширина, высота)."""
    return (
        settings.get("target_width", DEFAULT_SETTINGS["target_width"]),
        settings.get("target_height", DEFAULT_SETTINGS["target_height"]),
    )


def get_output_directory(settings):
    """Получить директорию для готовых видео."""
    return settings.get("output_directory") or DEFAULT_SETTINGS["output_directory"]
