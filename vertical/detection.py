"""vertical.detection — детекция лиц (YuNet / Haar) и сбор таймлайна лиц по кадрам."""

import glob
import logging
import os

try:
    import cv2
except Exception:  # pragma: no cover
    cv2 = None

from cache import provision_model
from errors import FaceDetectionError, VideoProcessingError
from utils import TempFileManager, safe_remove

YUNET_MODEL_URL = "https://github.com/opencv/opencv_zoo/raw/main/models/face_detection_yunet/face_detection_yunet_2023mar.onnx"
YUNET_MODEL_FILE = "face_detection_yunet_2023mar.onnx"

DETECTION_INPUT_SIZE = 416
STRICT_SCORE_THRESHOLD = 0.6
LENIENT_SCORE_THRESHOLD = 0.3
_NMS_THRESHOLD = 0.3
_TOP_K = 5000
# Haar не дает confidence, всем его срабатываниям присваивается одна оценка.
_HAAR_SCORE = 0.7

_SUPPORTED_BACKENDS = {"auto", "yunet", "haar"}
_HAAR_CASCADE_FILES = [
    "haarcascade_frontalface_default.xml",
    "haarcascade_frontalface_alt2.xml",
]


def _normalize_backend(backend):
    normalized = (backend or "").strip().lower()
    if normalized in _SUPPORTED_BACKENDS:
        return normalized
    return "auto"


def _candidate_cascade_paths():
    """Ищет доступные Haar-cascade файлы для детекции лиц."""
    if cv2 is None:
        return []
    dirs = set()
    if hasattr(cv2, "data"):
        cascades_dir = getattr(cv2.data, "haarcascades", None)
        if cascades_dir:
            dirs.add(cascades_dir)
    dirs.update({
        os.path.join(os.path.dirname(cv2.__file__), "data"),
        "/usr/local/share/opencv4/haarcascades",
        "/usr/share/opencv4/haarcascades",
    })
    dirs.update(glob.glob("/opt/homebrew/Cellar/opencv/*/share/opencv4/haarcascades"))
    paths = []
    for filename in _HAAR_CASCADE_FILES:
        for d in sorted(dirs):
            candidate = os.path.join(d, filename)
            if d and os.path.exists(candidate):
                paths.append(candidate)
                break
    return paths


def _resize_for_detection(frame, max_side=DETECTION_INPUT_SIZE):
    """Уменьшает кадр для ускорения детекции и возвращает scale."""
    if cv2 is None or frame is None:
        return frame, 1.0
    h, w = frame.shape[:2]
    max_dim = max(h, w)
    if max_dim <= 0 or max_dim <= max_side:
        return frame, 1.0
    scale = max_side / float(max_dim)
    resized = cv2.resize(frame, (int(round(w * scale)), int(round(h * scale))), interpolation=cv2.INTER_AREA)
    return resized, scale


class FaceDetector:
    """
    Детектор лиц с ленивой загрузкой модели.

    backend="auto" — YuNet (модель скачивается в кэш), при неудаче Haar-cascade.
    initialize() идемпотентен: модель грузится один раз, неудачная загрузка
    запоминается и не повторяется.
    """

    def __init__(self, backend="auto", model_dir=None, input_size=DETECTION_INPUT_SIZE):
        self.backend = _normalize_backend(backend)
        self.model_dir = model_dir
        self.input_size = input_size
        self.name = None
        self._model = None
        self._load_failed = False

    def is_ready(self):
        return self._model is not None

    def initialize(self):
        """Загружает модель. Возвращает True, если детектор готов к работе."""
        if self._model is not None:
            return True
        if self._load_failed:
            return False
        if cv2 is None:
            self._load_failed = True
            logging.warning("OpenCV недоступен, детекция лиц отключена.")
            return False

        if self.backend in ("auto", "yunet"):
            try:
                self._model = self._load_yunet()
                self.name = "yunet"
                logging.info("Загружен YuNet face detector")
                return True
            except Exception as exc:
                if self.backend == "yunet":
                    self._load_failed = True
                    logging.warning("Не удалось загрузить YuNet (%s).", exc)
                    return False
                logging.warning("YuNet недоступен (%s), пробую Haar-cascade.", exc)

        model = self._load_haar()
        if model is None:
            self._load_failed = True
            logging.warning("Не найдены Haar-cascade файлы для детекции лиц.")
            return False
        self._model = model
        self.name = "haar"
        logging.info("Загружен Haar-cascade face detector")
        return True

    def _load_yunet(self):
        if not hasattr(cv2, "FaceDetectorYN"):
            raise FaceDetectionError("Текущая сборка OpenCV не поддерживает FaceDetectorYN.")
        model_path = provision_model(YUNET_MODEL_URL, YUNET_MODEL_FILE, model_dir=self.model_dir)
        return cv2.FaceDetectorYN.create(
            model_path,
            "",
            (self.input_size, self.input_size),
            STRICT_SCORE_THRESHOLD,
            _NMS_THRESHOLD,
            _TOP_K,
        )

    def _load_haar(self):
        for path in _candidate_cascade_paths():
            detector = cv2.CascadeClassifier(path)
            if not detector.empty():
                return detector
        return None

    def detect(self, image, score_threshold=STRICT_SCORE_THRESHOLD):
        """
        Возвращает [{"box": (x, y, w, h), "score": float, "source": str}] в координатах исходного кадра.
        Ошибка инференса -> FaceDetectionError.
        """
        if not self.initialize():
            raise FaceDetectionError("Детектор лиц не инициализирован.")
        if image is None:
            return []
        resized, scale = _resize_for_detection(image, self.input_size)
        try:
            if self.name == "yunet":
                raw = self._detect_yunet(resized, score_threshold)
            else:
                raw = self._detect_haar(resized, score_threshold)
        except Exception as exc:
            raise FaceDetectionError(f"Ошибка детекции лиц: {exc}") from exc

        detections = []
        for (x, y, w, h), score in raw:
            if score < score_threshold:
                continue
            box = (
                int(round(x / scale)),
                int(round(y / scale)),
                int(round(w / scale)),
                int(round(h / scale)),
            )
            if box[2] <= 0 or box[3] <= 0:
                continue
            detections.append({"box": box, "score": float(score), "source": self.name})
        return detections

    def _detect_yunet(self, frame, score_threshold):
        h, w = frame.shape[:2]
        self._model.setInputSize((w, h))
        self._model.setScoreThreshold(score_threshold)
        _, faces = self._model.detect(frame)
        if faces is None:
            return []
        return [((det[0], det[1], det[2], det[3]), float(det[-1])) for det in faces]

    def _detect_haar(self, frame, score_threshold):
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        gray = cv2.equalizeHist(gray)
        min_side = max(20, int(min(gray.shape[:2]) * 0.04))
        # Мягкий проход — меньше соседей, больше срабатываний.
        min_neighbors = 5 if score_threshold >= STRICT_SCORE_THRESHOLD else 3
        faces = self._model.detectMultiScale(gray, scaleFactor=1.1, minNeighbors=min_neighbors, minSize=(min_side, min_side))
        return [((int(x), int(y), int(w), int(h)), _HAAR_SCORE) for x, y, w, h in faces]


def detect_faces_in_frame(detector, frame, strict_threshold=STRICT_SCORE_THRESHOLD, lenient_threshold=LENIENT_SCORE_THRESHOLD):
    """Два прохода: сначала строгий порог, при пустом результате — мягкий. Возвращает список box."""
    detections = detector.detect(frame, score_threshold=strict_threshold)
    if not detections:
        detections = detector.detect(frame, score_threshold=lenient_threshold)
        if detections:
            logging.info("Найдено %s лиц с мягким порогом", len(detections))
    return [tuple(item["box"]) for item in detections]


def _read_frame(frame_path):
    frame = cv2.imread(frame_path) if cv2 is not None else None
    if frame is None:
        raise FaceDetectionError(f"Не удалось прочитать кадр: {frame_path}")
    return frame


def detect_faces_across_timeline(input_clip, timestamps, detector, frame_extractor, temp_dir=None):
    """
    Последовательно извлекает кадр на каждом таймстемпе, ищет лица и удаляет кадр.

    Возвращает [{"timestamp", "faces"}]. Ошибка детектора на одном кадре дает
    пустой список лиц для этого кадра. Неудачная загрузка модели или извлечение
    кадра — пустой таймлайн целиком (дальше будет статический crop).
    """
    try:
        ready = detector.initialize()
    except Exception as exc:
        logging.warning("Инициализация детектора лиц упала: %s", exc)
        ready = False
    if not ready:
        logging.warning("Детектор лиц недоступен, таймлайн лиц пуст.")
        return []

    face_timeline = []
    try:
        with TempFileManager(base_dir=temp_dir, prefix="faceify_frames_") as temp_files:
            for i, timestamp in enumerate(timestamps):
                frame_path = temp_files.get_path(f"frame_{i}.jpg")
                try:
                    frame_extractor(input_clip, timestamp, frame_path)
                    frame = _read_frame(frame_path)
                    try:
                        faces = detect_faces_in_frame(detector, frame)
                    except Exception as exc:
                        logging.warning("Ошибка детекции на %ss: %s", timestamp, exc)
                        faces = []
                finally:
                    safe_remove(frame_path)
                logging.info("Таймстемп %ss: найдено лиц %s", timestamp, len(faces))
                face_timeline.append({"timestamp": timestamp, "faces": faces})
    except (FaceDetectionError, VideoProcessingError, OSError) as exc:
        logging.warning("Построение таймлайна лиц не удалось (%s), использую статический crop.", exc)
        return []
    return face_timeline
