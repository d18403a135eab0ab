"""vertical.planning — нарезка ключевых кадров на сегменты рендера."""

import logging

# Сдвиг crop в пределах этого отступа не считается движением камеры.
STATIC_CROP_MARGIN = 5
# Сегменты короче этого кодировать бессмысленно, они сливаются с соседом.
MIN_SEGMENT_DURATION = 0.5

_TIME_PRECISION = 3


def crops_are_static(keyframes, margin=STATIC_CROP_MARGIN):
    """True, если ключевой кадр один или все crop в пределах margin от первого по обеим осям."""
    if len(keyframes) <= 1:
        return True
    first_x, first_y = keyframes[0]["crop"][0], keyframes[0]["crop"][1]
    return all(
        abs(point["crop"][0] - first_x) <= margin and abs(point["crop"][1] - first_y) <= margin
        for point in keyframes
    )


def _make_segment(start, end, crop):
    return {
        "start": round(start, _TIME_PRECISION),
        "duration": round(end - start, _TIME_PRECISION),
        "crop_x": int(crop[0]),
        "crop_y": int(crop[1]),
    }


def plan_segments(keyframes, duration, min_segment=MIN_SEGMENT_DURATION):
    """
    Превращает ключевые кадры в сегменты {"start", "duration", "crop_x", "crop_y"}.

    Сегменты покрывают [0, duration) без дыр и наложений: первый начинается
    с нуля, последний заканчивается на duration. Слишком короткий сегмент
    присоединяется к предыдущему (первый — к следующему), а не выбрасывается.
    """
    if not keyframes:
        return []
    duration = float(duration)
    ordered = sorted(keyframes, key=lambda point: point["timestamp"])

    raw = []
    for i, point in enumerate(ordered):
        start = 0.0 if i == 0 else min(max(0.0, point["timestamp"]), duration)
        end = duration if i == len(ordered) - 1 else min(max(0.0, ordered[i + 1]["timestamp"]), duration)
        raw.append((start, end, point["crop"]))

    segments = []
    carry_start = None
    for start, end, crop in raw:
        if carry_start is not None:
            start = carry_start
            carry_start = None
        if end - start < min_segment:
            if segments:
                previous = segments[-1]
                previous["duration"] = round(end - previous["start"], _TIME_PRECISION)
            else:
                carry_start = start
            continue
        segments.append(_make_segment(start, end, crop))

    if carry_start is not None:
        # Весь ролик короче min_segment: один сегмент на всю длину.
        segments.append(_make_segment(carry_start, duration, raw[0][2]))

    logging.info("Запланировано %s сегментов из %s ключевых кадров", len(segments), len(keyframes))
    return segments
