"""vertical.rendering — FFmpeg: probe, кадры, рендер сегментов, склейка и convert_video."""

import json
import logging
import os
import subprocess
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, wait

from cache import build_timeline_cache_key, cache_face_timeline, get_cached_face_timeline, get_file_hash
from errors import InputError, VideoProcessingError
from scenes import DEFAULT_SCENE_THRESHOLD, make_scene_detector
from utils import ensure_dir, safe_remove
from vertical.detection import FaceDetector, detect_faces_across_timeline
from vertical.geometry import _build_crop_filter, calculate_vertical_crop
from vertical.planning import crops_are_static, plan_segments
from vertical.sampling import sample_timestamps
from vertical.timeline import build_crop_timeline, fill_timeline_gaps, prepare_keyframes

DEFAULT_OUTPUT_DIR = "converted-videos"


def _run_ffmpeg(cmd, error_prefix, cwd=None):
    """Запускает ffmpeg-команду и пробрасывает понятную ошибку."""
    try:
        subprocess.run(cmd, check=True, capture_output=True, text=True, cwd=cwd)
    except subprocess.CalledProcessError as exc:
        details = (exc.stderr or "").strip()[-500:]
        raise VideoProcessingError(f"{error_prefix}: {exc}. {details}") from exc
    except OSError as exc:
        raise VideoProcessingError(f"{error_prefix}: {exc}") from exc


def _encoding_params(encode_preset):
    """Единые параметры кодирования видео с приоритетом скорости."""
    preset = encode_preset or "veryfast"
    return ["-c:v", "libx264", "-preset", preset, "-crf", "23"]


def _parse_duration(value):
    try:
        duration = float(value) if value not in (None, "N/A", "") else 0.0
    except (TypeError, ValueError):
        duration = 0.0
    return max(0.0, duration)


def _probe_video_metadata(input_clip):
    """Возвращает ширину, высоту и длительность видео через ffprobe."""
    cmd = ["ffprobe", "-v", "error", "-select_streams", "v:0", "-show_entries", "stream=width,height,duration:format=duration", "-of", "json", input_clip]
    try:
        result = subprocess.run(cmd, check=True, capture_output=True, text=True)
        payload = json.loads(result.stdout or "{}")
    except (subprocess.CalledProcessError, OSError, ValueError) as exc:
        raise VideoProcessingError(f"Не удалось получить метаданные видео: {exc}") from exc
    stream = (payload.get("streams") or [{}])[0]
    width = int(stream.get("width") or 0)
    height = int(stream.get("height") or 0)
    # Длительность видеопотока точнее, контейнерная — запасной вариант.
    duration = _parse_duration(stream.get("duration"))
    if duration <= 0:
        duration = _parse_duration((payload.get("format") or {}).get("duration"))
    if width <= 0 or height <= 0:
        raise VideoProcessingError("ffprobe вернул некорректные размеры видео.")
    return width, height, duration


def extract_frame(input_clip, timestamp, frame_path):
    """Сохраняет один кадр на timestamp в frame_path (jpg)."""
    cmd = ["ffmpeg", "-ss", f"{timestamp:.3f}", "-i", input_clip, "-frames:v", "1", "-q:v", "2", frame_path, "-y"]
    _run_ffmpeg(cmd, f"Ошибка извлечения кадра на {timestamp}s")
    if not os.path.exists(frame_path):
        raise VideoProcessingError(f"FFmpeg не создал кадр на {timestamp}s.")
    return frame_path


def render_static_crop(input_clip, output_file, crop_rect, target_width, target_height, encode_preset="veryfast"):
    """Один crop на весь ролик."""
    logging.info("Статический crop: %s", crop_rect)
    vf_str = _build_crop_filter(crop_rect, target_width, target_height)
    cmd = ["ffmpeg", "-i", input_clip, "-vf", vf_str, *_encoding_params(encode_preset), "-c:a", "copy", output_file, "-y"]
    started = time.perf_counter()
    _run_ffmpeg(cmd, "Ошибка статического вертикального crop")
    if not os.path.exists(output_file):
        raise VideoProcessingError("FFmpeg не создал вертикальный файл.")
    logging.info("Vertical encode done: mode=static ffmpeg_encode_ms=%s", int((time.perf_counter() - started) * 1000))
    return output_file


def render_segment(input_clip, segment, crop_size, output_file, target_width, target_height, encode_preset="veryfast"):
    """Рендерит [start, start+duration) с фиксированным crop сегмента."""
    crop_w, crop_h = crop_size
    crop_rect = (segment["crop_x"], segment["crop_y"], crop_w, crop_h)
    vf_str = _build_crop_filter(crop_rect, target_width, target_height)
    cmd = [
        "ffmpeg",
        "-ss", f"{segment['start']:.3f}",
        "-i", input_clip,
        "-t", f"{segment['duration']:.3f}",
        "-vf", vf_str,
        *_encoding_params(encode_preset),
        "-c:a", "aac",
        output_file,
        "-y",
    ]
    _run_ffmpeg(cmd, f"Ошибка рендера сегмента {segment['start']}s")
    if not os.path.exists(output_file):
        raise VideoProcessingError(f"FFmpeg не создал сегмент {output_file}.")
    return output_file


def render_segments_concurrently(input_clip, segments, crop_size, segment_paths, target_width, target_height, encode_preset="veryfast", max_workers=4):
    """
    Рендерит сегменты параллельно и дожидается всех до склейки.
    Первая ошибка пробрасывается после завершения остальных задач.
    """
    with ThreadPoolExecutor(max_workers=max(1, int(max_workers))) as executor:
        futures = [
            executor.submit(render_segment, input_clip, segment, crop_size, path, target_width, target_height, encode_preset)
            for segment, path in zip(segments, segment_paths)
        ]
        wait(futures)
    results = []
    for index, future in enumerate(futures):
        results.append(future.result())
        logging.info("Сегмент %s обработан", index)
    return results


def concat_segments(segment_paths, list_file, output_file):
    """Склеивает сегменты по порядку без перекодирования (concat demuxer)."""
    list_content = "\n".join(f"file '{os.path.abspath(path)}'" for path in segment_paths)
    try:
        with open(list_file, 'w', encoding='utf-8') as f:
            f.write(list_content)
    except OSError as exc:
        raise VideoProcessingError(f"Не удалось записать список сегментов: {exc}") from exc
    cmd = ["ffmpeg", "-f", "concat", "-safe", "0", "-i", os.path.abspath(list_file), "-c", "copy", output_file, "-y"]
    logging.info("Склейка сегментов: %s", " ".join(cmd))
    _run_ffmpeg(cmd, "Ошибка склейки сегментов")
    if not os.path.exists(output_file):
        raise VideoProcessingError("FFmpeg не создал склеенный файл.")
    return output_file


def _render_dynamic_crop(input_clip, output_file, face_timeline, video_info, segments_dir, target_width, target_height, encode_preset, render_workers):
    """Crop, следующий за лицами: таймлайн -> ключевые кадры -> сегменты -> склейка."""
    frame_w, frame_h, duration = video_info
    target_aspect = target_width / float(target_height)
    crop_timeline = build_crop_timeline(face_timeline, frame_w, frame_h, target_aspect)
    fill_timeline_gaps(crop_timeline)
    keyframes = prepare_keyframes(crop_timeline)

    if crops_are_static(keyframes):
        logging.info("Crop не меняется, использую статический crop для всего видео")
        return render_static_crop(input_clip, output_file, keyframes[0]["crop"], target_width, target_height, encode_preset)

    segments = plan_segments(keyframes, duration)
    if not segments:
        raise VideoProcessingError("План сегментов пуст.")
    crop_size = tuple(keyframes[0]["crop"][2:])
    logging.info("Создаю сегментированный crop: %s сегментов", len(segments))

    job_id = str(uuid.uuid4())[:8]
    segment_paths = [os.path.join(segments_dir, f"segment_{job_id}_{i}.mp4") for i in range(len(segments))]
    list_file = os.path.join(segments_dir, f"segments_{job_id}.txt")
    started = time.perf_counter()
    try:
        render_segments_concurrently(input_clip, segments, crop_size, segment_paths, target_width, target_height, encode_preset=encode_preset, max_workers=render_workers)
        concat_segments(segment_paths, list_file, output_file)
    finally:
        for path in segment_paths:
            safe_remove(path)
        safe_remove(list_file)
    logging.info("Vertical encode done: mode=segmented segments=%s ffmpeg_encode_ms=%s", len(segments), int((time.perf_counter() - started) * 1000))
    return output_file


def build_face_timeline(input_clip, duration, detector, scene_backend="ffmpeg", scene_threshold=DEFAULT_SCENE_THRESHOLD, use_timeline_cache=True, cache_dir=None):
    """Выборка таймстемпов + детекция лиц (с кэшем таймлайна по хэшу файла)."""
    timestamps = sample_timestamps(input_clip, duration, make_scene_detector(scene_threshold, scene_backend))

    cache_key = None
    if use_timeline_cache:
        source_hash = get_file_hash(input_clip)
        if source_hash:
            cache_key = build_timeline_cache_key(source_hash, timestamps, getattr(detector, "backend", None))
            cached = get_cached_face_timeline(cache_key, cache_dir)
            if cached:
                return cached

    face_timeline = detect_faces_across_timeline(input_clip, timestamps, detector, extract_frame)
    if cache_key and face_timeline:
        cache_face_timeline(cache_key, face_timeline, cache_dir)
    return face_timeline


def convert_video(input_path, output_dir=None, target_width=1080, target_height=1920, detect_faces=True, detector=None, detector_backend="auto", scene_backend="ffmpeg", scene_threshold=DEFAULT_SCENE_THRESHOLD, render_workers=4, encode_preset="veryfast", use_timeline_cache=True, model_dir=None, cache_dir=None):
    """
    Конвертирует горизонтальное видео в вертикальное с crop, следящим за лицами.

    Возвращает {"original_path", "converted_path", "faces"}, где faces — лица
    на первом проанализированном таймстемпе. Ошибка сегментированного рендера
    не фатальна: fallback на статический crop по лицам первого таймстемпа.
    Фатальны только отсутствие входного файла, ошибка ffprobe и ошибка fallback-рендера.
    """
    if not input_path or not os.path.isfile(input_path):
        raise InputError(f"Входной файл не найден: {input_path}")

    output_dir = output_dir or DEFAULT_OUTPUT_DIR
    segments_dir = os.path.join(output_dir, "segments")
    ensure_dir(output_dir)
    ensure_dir(segments_dir)
    output_file = os.path.join(output_dir, f"mobile_{os.path.basename(input_path)}")

    video_info = _probe_video_metadata(input_path)
    frame_w, frame_h, duration = video_info
    target_aspect = target_width / float(target_height)
    logging.info("Видео %s: %sx%s, %.2f секунд", input_path, frame_w, frame_h, duration)

    face_timeline = []
    if detect_faces:
        detector = detector or FaceDetector(backend=detector_backend, model_dir=model_dir)
        face_timeline = build_face_timeline(
            input_path, duration, detector,
            scene_backend=scene_backend,
            scene_threshold=scene_threshold,
            use_timeline_cache=use_timeline_cache,
            cache_dir=cache_dir,
        )
    first_faces = list(face_timeline[0]["faces"]) if face_timeline else []

    if not any(point["faces"] for point in face_timeline):
        logging.info("Лица не найдены, использую центральный crop")
        crop_rect = calculate_vertical_crop([], frame_w, frame_h, target_aspect)
        render_static_crop(input_path, output_file, crop_rect, target_width, target_height, encode_preset)
    else:
        try:
            _render_dynamic_crop(input_path, output_file, face_timeline, video_info, segments_dir, target_width, target_height, encode_preset, render_workers)
        except Exception as exc:
            logging.warning("Динамический crop не удался (%s). Fallback на статический crop.", exc)
            crop_rect = calculate_vertical_crop(first_faces, frame_w, frame_h, target_aspect)
            render_static_crop(input_path, output_file, crop_rect, target_width, target_height, encode_preset)

    logging.info("Конвертация завершена: %s", output_file)
    return {
        "original_path": input_path,
        "converted_path": output_file,
        "faces": first_faces,
    }
