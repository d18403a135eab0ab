"""vertical.sampling — выбор таймстемпов для детекции лиц.

Кадры для детектора выбираются по сменам сцен (внешний движок), плюс
обязательные точки у начала и конца ролика. Количество ограничено снизу
(покрытие всего ролика) и сверху (детектор дорогой).
"""

import logging
import math

from vertical.geometry import _select_evenly_spaced

MIN_SAMPLES = 5
MAX_SAMPLES = 25
START_ANCHOR = 0.5
END_ANCHOR_OFFSET = 2.0
UNIFORM_INTERVAL = 15.0
UNIFORM_TAIL_MARGIN = 5.0
MIN_SCENE_SPACING = 3.0
MIN_SCENE_CANDIDATES = 3
MAX_SAMPLE_GAP = 30.0

_TIMESTAMP_PRECISION = 3


def _anchor_timestamps(duration):
    return [START_ANCHOR, max(START_ANCHOR, duration - END_ANCHOR_OFFSET)]


def _normalize_timestamps(timestamps, duration):
    """Округляет, обрезает по [0, duration], убирает дубли и сортирует."""
    normalized = set()
    for ts in timestamps:
        try:
            value = float(ts)
        except (TypeError, ValueError):
            continue
        if math.isnan(value):
            continue
        value = min(max(0.0, value), duration)
        normalized.add(round(value, _TIMESTAMP_PRECISION))
    return sorted(normalized)


def uniform_timestamps(duration, interval=UNIFORM_INTERVAL):
    """Запасная выборка: 0.5с, далее каждые interval секунд и точка у конца."""
    samples = [START_ANCHOR]
    time_point = interval
    while time_point < duration - UNIFORM_TAIL_MARGIN:
        samples.append(time_point)
        time_point += interval
    if samples[-1] < duration - UNIFORM_TAIL_MARGIN:
        samples.append(duration - END_ANCHOR_OFFSET)
    return samples


def filter_scene_candidates(raw_timestamps, min_spacing=MIN_SCENE_SPACING):
    """Оставляет смены сцен не ближе min_spacing секунд друг к другу (и к началу ролика)."""
    filtered = []
    last_timestamp = 0.0
    for ts in sorted(float(t) for t in raw_timestamps):
        if ts - last_timestamp >= min_spacing:
            filtered.append(ts)
            last_timestamp = ts
    return filtered


def fill_long_gaps(timestamps, max_gap=MAX_SAMPLE_GAP):
    """Добавляет равномерные промежуточные точки в интервалы длиннее max_gap."""
    ordered = sorted(timestamps)
    intermediate = []
    for current, following in zip(ordered, ordered[1:]):
        gap = following - current
        if gap > max_gap:
            count = int(math.floor(gap / max_gap))
            step = gap / (count + 1)
            for j in range(1, count + 1):
                intermediate.append(current + j * step)
    if intermediate:
        logging.debug("Добавлено %s промежуточных таймстемпов (max_gap=%s)", len(intermediate), max_gap)
    return sorted(ordered + intermediate)


def _ensure_minimum(timestamps, duration, min_samples):
    """Добивает выборку равномерными точками, пока не наберется min_samples."""
    result = list(timestamps)
    if len(result) >= min_samples or duration <= 0:
        return result
    divisions = min_samples - len(result) + 1
    # Сетка мельчает, пока новые точки не перестанут совпадать с уже выбранными.
    while len(result) < min_samples and divisions <= min_samples * 8:
        candidates = [duration * i / float(divisions) for i in range(1, divisions)]
        merged = _normalize_timestamps(result + candidates, duration)
        needed = min_samples - len(result)
        fresh = [ts for ts in merged if ts not in result]
        if len(fresh) >= needed:
            result = _normalize_timestamps(result + _select_evenly_spaced(fresh, needed), duration)
            break
        divisions += 1
    return result


def build_sample_timestamps(duration, scene_timestamps=None, min_samples=MIN_SAMPLES, max_samples=MAX_SAMPLES):
    """
    Строит упорядоченный список таймстемпов для детекции.

    scene_timestamps=None означает, что поиск сцен не удался: тогда только
    равномерная выборка. Результат всегда содержит 0.5с и max(0.5, duration-2)
    (в пределах длительности), строго возрастает, его длина в [min_samples, max_samples]
    если ролик достаточно длинный.
    """
    duration = max(0.0, float(duration or 0.0))
    if duration <= 0:
        return [0.0]

    if scene_timestamps is None:
        logging.info("Смены сцен недоступны, использую равномерную выборку")
        base = uniform_timestamps(duration)
    else:
        filtered = filter_scene_candidates(ts for ts in scene_timestamps if 0 <= ts <= duration)
        logging.info(
            "Найдено %s кандидатов смены сцен, после фильтра близких: %s",
            len(scene_timestamps), len(filtered),
        )
        if len(filtered) >= MIN_SCENE_CANDIDATES:
            base = fill_long_gaps(_anchor_timestamps(duration) + filtered)
        else:
            logging.info("Мало смен сцен, объединяю с равномерной выборкой")
            base = filtered + uniform_timestamps(duration)

    timestamps = _normalize_timestamps(base + _anchor_timestamps(duration), duration)
    timestamps = _ensure_minimum(timestamps, duration, min_samples)

    if len(timestamps) > max_samples:
        # Первый и последний таймстемпы сохраняются всегда.
        timestamps = _select_evenly_spaced(timestamps, max_samples)

    logging.info("Анализирую %s ключевых кадров на %.2f секундах видео", len(timestamps), duration)
    return timestamps


def sample_timestamps(input_clip, duration, scene_detector, min_samples=MIN_SAMPLES, max_samples=MAX_SAMPLES):
    """
    Получает смены сцен у внешнего движка и строит выборку.
    Не бросает исключений: при любой ошибке движка — равномерная выборка.
    """
    try:
        scene_timestamps = list(scene_detector(input_clip))
    except Exception as exc:
        logging.warning("Поиск смен сцен не удался (%s), fallback на равномерную выборку.", exc)
        scene_timestamps = None
    return build_sample_timestamps(duration, scene_timestamps, min_samples=min_samples, max_samples=max_samples)
