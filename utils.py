# utils.py — вспомогательные функции для проекта
import tempfile

import os
import logging


class TempFileManager:
    """
    Временная директория на одну конвертацию для извлеченных кадров.
    Удаляется на выходе из контекста, в том числе если внутри произошла ошибка.

    Использование:
        with TempFileManager(base_dir=output_dir, prefix='frames_') as temp_files:
            frame_path = temp_files.get_path('frame_0.jpg')
    """

    def __init__(self, base_dir=None, prefix='faceify_'):
        self.base_dir = base_dir
        self.prefix = prefix
        self.temp_dir = None
        self._temp_dir_obj = None

    def __enter__(self):
        if self.base_dir:
            ensure_dir(self.base_dir)
        self._temp_dir_obj = tempfile.TemporaryDirectory(prefix=self.prefix, dir=self.base_dir)
        self.temp_dir = self._temp_dir_obj.__enter__()
        logging.debug("Создана временная директория: %s", self.temp_dir)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Ошибки очистки только логируются, исключение из контекста не подавляется."""
        try:
            self._temp_dir_obj.__exit__(exc_type, exc_val, exc_tb)
            logging.debug("Временная директория удалена: %s", self.temp_dir)
        except OSError as ex:
            logging.warning("Не удалось удалить временную директорию %s: %s", self.temp_dir, ex)
        return False

    def get_path(self, filename):
        """Полный путь к файлу внутри временной директории."""
        if not self.temp_dir:
            raise RuntimeError("TempFileManager должен использоваться в контексте with")
        return os.path.join(self.temp_dir, filename)


def ensure_dir(path):
    """
    Проверяет, существует ли папка, и создаёт её если нужно.
    """
    try:
        os.makedirs(path, exist_ok=True)
    except Exception as ex:
        logging.warning(f"Не удалось создать папку {path}: {ex}")


def safe_remove(path):
    """
    Безопасно удаляет файл по указанному пути. Ошибки не пробрасываются.
    """
    try:
        if path and os.path.exists(path):
            os.remove(path)
    except Exception as ex:
        logging.warning(f"Ошибка удаления {path}: {ex}")
