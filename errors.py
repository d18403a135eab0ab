# errors.py — единая иерархия исключений Faceify

"""
Кастомные исключения для Faceify.

Иерархия:
    FaceifyError
    ├── InputError               — исходный файл отсутствует или не читается
    ├── SceneDetectionError      — ошибки поиска смены сцен
    ├── FaceDetectionError       — ошибки загрузки/работы детектора лиц
    │   └── ModelProvisioningError — модель не скачалась или битая в кэше
    └── VideoProcessingError     — ошибки ffprobe/ffmpeg (crop, сегменты, concat)
"""


class FaceifyError(Exception):
    """Базовый класс для всех ошибок Faceify."""
    pass


class InputError(FaceifyError):
    """Входной файл не найден или недоступен."""
    pass


class SceneDetectionError(FaceifyError):
    """Ошибка при детекции смены сцен."""
    pass


class FaceDetectionError(FaceifyError):
    """Ошибка детектора лиц (загрузка модели или инференс)."""
    pass


class ModelProvisioningError(FaceDetectionError):
    """Не удалось получить файл модели (скачивание, кэш, контрольная сумма)."""
    pass


class VideoProcessingError(FaceifyError):
    """Ошибка при обработке видео (ffprobe, crop, рендер сегментов, склейка)."""
    pass
