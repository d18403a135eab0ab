"""vertical.timeline — crop-таймлайн: построение, заполнение пропусков, сглаживание, прореживание.

Точка таймлайна: {"timestamp": float, "crop": (x, y, w, h), "reliable": bool}.
reliable=True только там, где детектор действительно нашел лица.
"""

import copy
import logging

from vertical.geometry import calculate_vertical_crop

# Доля исходной позиции при сглаживании (остальное — локальное среднее).
SMOOTHING_ORIGINAL_WEIGHT = 0.7
# Пороги "похожих" соседних ключевых кадров, в пикселях.
SIMILAR_X_THRESHOLD = 20
SIMILAR_Y_THRESHOLD = 10
# Ключевые кадры ближе этого интервала могут быть слиты.
MIN_KEYFRAME_SPACING = 5.0


def build_crop_timeline(face_timeline, frame_w, frame_h, target_aspect=9 / 16):
    """Переводит [{"timestamp", "faces"}] в crop-точки, по одной на таймстемп."""
    crop_timeline = []
    for point in face_timeline:
        faces = point.get("faces") or []
        crop_timeline.append({
            "timestamp": float(point["timestamp"]),
            "crop": calculate_vertical_crop(faces, frame_w, frame_h, target_aspect=target_aspect),
            "reliable": bool(faces),
        })
    return crop_timeline


def _interpolate_position(before, after, timestamp):
    total_interval = after["timestamp"] - before["timestamp"]
    fraction = (timestamp - before["timestamp"]) / total_interval if total_interval > 0 else 0.0
    bx, by = before["crop"][0], before["crop"][1]
    ax, ay = after["crop"][0], after["crop"][1]
    return (
        int(round(bx + (ax - bx) * fraction)),
        int(round(by + (ay - by) * fraction)),
    )


def fill_timeline_gaps(crop_timeline):
    """
    Заполняет позиции crop для таймстемпов без лиц (изменяет точки на месте).

    Есть надежные соседи с обеих сторон — линейная интерполяция x, y по времени.
    Только слева — копия последнего, только справа — копия ближайшего следующего.
    Надежных точек нет вообще — остается центральный crop.
    Якорями служат только исходные детекции, заполненные точки не участвуют.
    """
    reliable = [point for point in crop_timeline if point.get("reliable")]
    if not reliable or len(reliable) == len(crop_timeline):
        return crop_timeline

    logging.info("Заполняю %s таймстемпов без лиц", len(crop_timeline) - len(reliable))
    # Снимок якорей до изменений.
    anchors = [{"timestamp": p["timestamp"], "crop": tuple(p["crop"])} for p in reliable]

    for point in crop_timeline:
        if point.get("reliable"):
            continue
        ts = point["timestamp"]
        before = None
        after = None
        for anchor in anchors:
            if anchor["timestamp"] < ts:
                before = anchor
            elif anchor["timestamp"] > ts and after is None:
                after = anchor
        _, _, crop_w, crop_h = point["crop"]
        if before and after:
            x, y = _interpolate_position(before, after, ts)
            point["crop"] = (x, y, crop_w, crop_h)
            logging.debug("Интерполирован crop на %ss: x=%s y=%s", ts, x, y)
        elif before:
            point["crop"] = tuple(before["crop"])
            logging.debug("Crop на %ss взят из %ss", ts, before["timestamp"])
        elif after:
            point["crop"] = tuple(after["crop"])
            logging.debug("Crop на %ss взят из %ss", ts, after["timestamp"])
    return crop_timeline


def _weighted_local_average(prev_value, value, next_value, weight_prev, weight_next):
    return (prev_value * weight_prev + value + next_value * weight_next) / (1.0 + weight_prev + weight_next)


def smooth_crop_timeline(crop_timeline, original_weight=SMOOTHING_ORIGINAL_WEIGHT):
    """
    Сглаживает x, y внутренних точек взвешенным по времени 3-точечным средним.

    Близкие по времени соседи влияют сильнее. Итог = original_weight * исходное
    + (1 - original_weight) * среднее. Первая и последняя точки не меняются.
    Проход идет слева направо по копии, так что точка i видит уже сглаженную i-1.
    """
    smoothed = copy.deepcopy(crop_timeline)
    if len(smoothed) <= 2:
        return smoothed

    for i in range(1, len(smoothed) - 1):
        prev_point = smoothed[i - 1]
        point = smoothed[i]
        next_point = smoothed[i + 1]
        dt_prev = point["timestamp"] - prev_point["timestamp"]
        dt_next = next_point["timestamp"] - point["timestamp"]
        total_dt = dt_prev + dt_next
        if total_dt <= 0:
            continue
        weight_prev = 1.0 - dt_prev / total_dt
        weight_next = 1.0 - dt_next / total_dt

        px, py = prev_point["crop"][0], prev_point["crop"][1]
        x, y, crop_w, crop_h = point["crop"]
        nx, ny = next_point["crop"][0], next_point["crop"][1]

        smooth_x = _weighted_local_average(px, x, nx, weight_prev, weight_next)
        smooth_y = _weighted_local_average(py, y, ny, weight_prev, weight_next)
        new_x = int(round(x * original_weight + smooth_x * (1.0 - original_weight)))
        new_y = int(round(y * original_weight + smooth_y * (1.0 - original_weight)))
        point["crop"] = (new_x, new_y, crop_w, crop_h)
    return smoothed


def reduce_keyframes(crop_timeline, x_threshold=SIMILAR_X_THRESHOLD, y_threshold=SIMILAR_Y_THRESHOLD, min_spacing=MIN_KEYFRAME_SPACING):
    """
    Убирает избыточные ключевые кадры, чтобы сократить число сегментов рендера.

    Точка сливается с последней оставленной, если она похожа (|dx| < x_threshold
    и |dy| < y_threshold) и близка по времени (dt < min_spacing). Первая и
    последняя точки сохраняются всегда.
    """
    if len(crop_timeline) <= 2:
        return list(crop_timeline)

    kept = [crop_timeline[0]]
    last_index = len(crop_timeline) - 1
    for i in range(1, len(crop_timeline)):
        last_kept = kept[-1]
        point = crop_timeline[i]
        is_similar = (
            abs(point["crop"][0] - last_kept["crop"][0]) < x_threshold
            and abs(point["crop"][1] - last_kept["crop"][1]) < y_threshold
        )
        is_close_in_time = (point["timestamp"] - last_kept["timestamp"]) < min_spacing
        if is_similar and is_close_in_time and i < last_index:
            continue
        kept.append(point)

    logging.info("Сокращено с %s до %s ключевых кадров после сглаживания", len(crop_timeline), len(kept))
    return kept


def log_crop_timeline(crop_timeline, title):
    logging.info(title)
    for point in crop_timeline:
        logging.info("Таймстемп %ss: crop x=%s, y=%s", point["timestamp"], point["crop"][0], point["crop"][1])


def prepare_keyframes(crop_timeline):
    """Сглаживание + прореживание: из crop-таймлайна получаются ключевые кадры для планировщика."""
    log_crop_timeline(crop_timeline, "Crop-таймлайн до сглаживания:")
    smoothed = smooth_crop_timeline(crop_timeline)
    log_crop_timeline(smoothed, "После сглаживания:")
    return reduce_keyframes(smoothed)
