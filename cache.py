# cache.py — кэш моделей детектора и таймлайнов лиц

import hashlib
import json
import os
import logging
import time

import requests

from errors import ModelProvisioningError

logger = logging.getLogger(__name__)

CACHE_DIR = "cache"
MODELS_DIR = os.path.join(CACHE_DIR, "models")
TIMELINES_DIR = os.path.join(CACHE_DIR, "timelines")

TIMELINE_CACHE_VERSION = 1


def ensure_cache_dirs(cache_dir=None):
    """Создает директории для кэша."""
    root = cache_dir or CACHE_DIR
    os.makedirs(os.path.join(root, "models"), exist_ok=True)
    os.makedirs(os.path.join(root, "timelines"), exist_ok=True)


def get_file_hash(file_path, chunk_size=1024 * 1024):
    """
    Вычисляет хэш файла для идентификации.
    Читает файл чанками, чтобы не загружать всё видео в RAM.
    """
    hasher = hashlib.md5()
    try:
        with open(file_path, 'rb') as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                hasher.update(chunk)
        return hasher.hexdigest()
    except Exception as e:
        logger.error(f"Ошибка вычисления хэша: {e}")
        return None


def get_model_cache_path(filename, model_dir=None):
    """Возвращает путь к файлу модели в локальном кэше."""
    return os.path.join(model_dir or MODELS_DIR, filename)


def provision_model(url, filename, model_dir=None, expected_md5=None, timeout=60):
    """
    Гарантирует наличие файла модели в локальном кэше и возвращает путь к нему.

    Если файл уже лежит в кэше (и совпадает md5, когда он задан), сеть не
    используется. Иначе файл скачивается во временный файл рядом и атомарно
    переименовывается. Любая неудача -> ModelProvisioningError, недокачанный
    файл в кэше не остается.
    """
    target_dir = model_dir or MODELS_DIR
    model_path = get_model_cache_path(filename, target_dir)

    if os.path.exists(model_path) and os.path.getsize(model_path) > 0:
        if not expected_md5 or get_file_hash(model_path) == expected_md5:
            logger.debug("Модель найдена в кэше: %s", model_path)
            return model_path
        logger.warning("Контрольная сумма модели %s не совпала, скачиваю заново.", model_path)

    try:
        os.makedirs(target_dir, exist_ok=True)
    except OSError as e:
        raise ModelProvisioningError(f"Не удалось создать кеш-директорию моделей {target_dir}: {e}") from e

    tmp_path = f"{model_path}.part"
    logger.info("Скачиваю модель детектора: %s", url)
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with open(tmp_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=1024 * 256):
                    if chunk:
                        f.write(chunk)
        if os.path.getsize(tmp_path) <= 0:
            raise ModelProvisioningError(f"Скачан пустой файл модели: {url}")
        if expected_md5:
            actual = get_file_hash(tmp_path)
            if actual != expected_md5:
                raise ModelProvisioningError(
                    f"Контрольная сумма модели не совпала: ожидалось {expected_md5}, получено {actual}"
                )
        os.replace(tmp_path, model_path)
    except ModelProvisioningError:
        _remove_partial(tmp_path)
        raise
    except (requests.RequestException, OSError) as e:
        _remove_partial(tmp_path)
        raise ModelProvisioningError(f"Не удалось скачать модель {url}: {e}") from e

    logger.info("Модель сохранена в кэш: %s", model_path)
    return model_path


def _remove_partial(path):
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning(f"Не удалось удалить недокачанный файл {path}: {e}")


def build_timeline_cache_key(source_hash, timestamps, detector_name=None):
    """
    Строит ключ кэша таймлайна лиц.
    Набор таймстемпов входит в ключ: другая выборка кадров = другой таймлайн.
    """
    payload = {
        "source_hash": source_hash,
        "timestamps": [round(float(ts), 3) for ts in timestamps],
        "detector": detector_name,
        "version": TIMELINE_CACHE_VERSION,
    }
    encoded = json.dumps(payload, sort_keys=True, ensure_ascii=False).encode('utf-8')
    return hashlib.md5(encoded).hexdigest()


def _timeline_cache_path(cache_key, cache_dir=None):
    return os.path.join(cache_dir or CACHE_DIR, "timelines", f"{cache_key}.json")


def cache_face_timeline(cache_key, face_timeline, cache_dir=None):
    """
    Сохраняет таймлайн лиц в кэш.
    """
    ensure_cache_dirs(cache_dir)
    path = _timeline_cache_path(cache_key, cache_dir)
    payload = {
        "updated_at": time.time(),
        "points": [
            {"timestamp": point["timestamp"], "faces": [list(face) for face in point["faces"]]}
            for point in face_timeline
        ],
    }
    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        logger.info("Таймлайн лиц закэширован: %s...", cache_key[:8])
        return True
    except Exception as e:
        logger.error(f"Ошибка кэширования таймлайна: {e}")
        return False


def get_cached_face_timeline(cache_key, cache_dir=None):
    """
    Получает таймлайн лиц из кэша.
    """
    path = _timeline_cache_path(cache_key, cache_dir)
    if not os.path.exists(path):
        return None
    try:
        with open(path, 'r', encoding='utf-8') as f:
            payload = json.load(f)
        points = [
            {"timestamp": float(point["timestamp"]), "faces": [tuple(int(v) for v in face) for face in point["faces"]]}
            for point in payload.get("points", [])
        ]
    except Exception as e:
        logger.warning(f"Ошибка чтения кэша таймлайна: {e}")
        return None
    logger.info("Таймлайн лиц найден в кэше: %s...", cache_key[:8])
    return points


def get_cache_size(cache_dir=None):
    """
    Возвращает размер кэша в байтах.
    """
    root = cache_dir or CACHE_DIR
    total_size = 0
    if os.path.exists(root):
        for dir_root, dirs, files in os.walk(root):
            for f in files:
                total_size += os.path.getsize(os.path.join(dir_root, f))
    return total_size


def format_cache_size(size_bytes):
    """Форматирует размер в человекочитаемый вид."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"


def clear_cache(max_age_days=30, cache_dir=None):
    """
    Очищает старые таймлайны. Модели не трогаем: их повторное скачивание дорогое.
    """
    timelines_dir = os.path.join(cache_dir or CACHE_DIR, "timelines")
    current_time = time.time()
    deleted_count = 0
    deleted_size = 0

    if os.path.exists(timelines_dir):
        for f in os.listdir(timelines_dir):
            fp = os.path.join(timelines_dir, f)
            try:
                if (current_time - os.path.getmtime(fp)) > (max_age_days * 86400):
                    deleted_size += os.path.getsize(fp)
                    os.remove(fp)
                    deleted_count += 1
            except OSError as e:
                logger.warning(f"Не удалось удалить файл кэша {fp}: {e}")

    logger.info(f"Удалено {deleted_count} файлов кэша ({format_cache_size(deleted_size)})")
    return deleted_count, format_cache_size(deleted_size)
