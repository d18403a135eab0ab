"""vertical.geometry — геометрия crop: размер окна 9:16 и агрегация face-box в одну точку."""

import math

# Лица меньше этой доли от самого крупного считаются фоновыми.
MIN_FACE_AREA_RATIO = 0.4
# Вес лица на краю кадра умножается на эту величину (в центре — на 1.0).
MIN_CENTRALITY = 0.5


def _clamp(value, min_value, max_value):
    return max(min_value, min(max_value, value))


def _box_area(box):
    return box[2] * box[3]


def _box_center(box):
    x, y, w, h = box
    return x + w / 2.0, y + h / 2.0


def _clip_face_box(face_box, frame_w, frame_h):
    """Обрезает face-box по границам кадра. Пустое пересечение -> None."""
    x, y, w, h = [int(round(v)) for v in face_box]
    x1 = _clamp(x, 0, frame_w)
    y1 = _clamp(y, 0, frame_h)
    x2 = _clamp(x + w, 0, frame_w)
    y2 = _clamp(y + h, 0, frame_h)
    if x2 <= x1 or y2 <= y1:
        return None
    return (x1, y1, x2 - x1, y2 - y1)


def calculate_crop_size(frame_w, frame_h, target_aspect=9 / 16):
    """
    Размер crop-окна нужного aspect ratio, максимально большой в пределах кадра.
    Для широкого видео берется вся высота, для узкого — вся ширина.
    """
    if frame_w <= 0 or frame_h <= 0:
        raise ValueError(f"Некорректные размеры кадра: {frame_w}x{frame_h}")
    if frame_w / float(frame_h) > target_aspect:
        crop_h = frame_h
        crop_w = int(math.floor(crop_h * target_aspect))
    else:
        crop_w = frame_w
        crop_h = int(math.floor(crop_w / target_aspect))
    crop_w = _clamp(max(1, crop_w), 1, frame_w)
    crop_h = _clamp(max(1, crop_h), 1, frame_h)
    return crop_w, crop_h


def center_crop(frame_w, frame_h, crop_w, crop_h):
    x = (frame_w - crop_w) // 2
    y = (frame_h - crop_h) // 2
    return (_clamp(x, 0, frame_w - crop_w), _clamp(y, 0, frame_h - crop_h), crop_w, crop_h)


def _crop_around_center(center_x, center_y, frame_w, frame_h, crop_w, crop_h):
    x = int(round(center_x - crop_w / 2.0))
    y = int(round(center_y - crop_h / 2.0))
    x = _clamp(x, 0, frame_w - crop_w)
    y = _clamp(y, 0, frame_h - crop_h)
    return (x, y, crop_w, crop_h)


def _fit_axis(face_start, face_size, crop_size, frame_size):
    """Позиция окна по одной оси: центр на лице, затем минимальный сдвиг, чтобы лицо влезло целиком."""
    pos = int(round(face_start + face_size / 2.0 - crop_size / 2.0))
    if face_size <= crop_size:
        if face_start < pos:
            pos = face_start
        if face_start + face_size > pos + crop_size:
            pos = face_start + face_size - crop_size
    return _clamp(pos, 0, max(0, frame_size - crop_size))


def crop_for_single_face(face_box, frame_w, frame_h, crop_w, crop_h):
    """Окно привязано к центру лица и сдвинуто так, чтобы лицо было внутри целиком (если помещается)."""
    x, y, w, h = face_box
    crop_x = _fit_axis(x, w, crop_w, frame_w)
    crop_y = _fit_axis(y, h, crop_h, frame_h)
    return (crop_x, crop_y, crop_w, crop_h)


def face_centrality(face_box, frame_w, frame_h):
    """
    Множитель в [0.5, 1]: 1 для лица в центре кадра, линейно падает к краям.
    """
    cx, cy = _box_center(face_box)
    offset = (abs(cx - frame_w / 2.0) / frame_w) * 2 + (abs(cy - frame_h / 2.0) / frame_h) * 2
    return 1.0 - min(1.0, offset) * (1.0 - MIN_CENTRALITY)


def filter_incidental_faces(faces, min_area_ratio=MIN_FACE_AREA_RATIO):
    """Отбрасывает лица, площадь которых меньше min_area_ratio от самого крупного."""
    if len(faces) <= 1:
        return list(faces)
    ordered = sorted(faces, key=_box_area, reverse=True)
    largest_area = _box_area(ordered[0])
    kept = [ordered[0]]
    for face in ordered[1:]:
        if _box_area(face) >= largest_area * min_area_ratio:
            kept.append(face)
    return kept


def weighted_face_center(faces, frame_w, frame_h):
    """Взвешенный центр: вес = площадь * centrality. Нулевой суммарный вес -> None."""
    total_weight = 0.0
    weighted_x = 0.0
    weighted_y = 0.0
    for face in faces:
        weight = _box_area(face) * face_centrality(face, frame_w, frame_h)
        cx, cy = _box_center(face)
        total_weight += weight
        weighted_x += cx * weight
        weighted_y += cy * weight
    if total_weight <= 0:
        return None
    return weighted_x / total_weight, weighted_y / total_weight


def calculate_vertical_crop(faces, frame_w, frame_h, target_aspect=9 / 16, min_area_ratio=MIN_FACE_AREA_RATIO):
    """
    Сводит список face-box одного таймстемпа к одному crop-прямоугольнику (x, y, w, h).

    Без лиц — центральный crop. Одно лицо — окно вокруг лица с гарантией,
    что лицо целиком внутри. Несколько — окно по взвешенному центру,
    мелкие фоновые лица предварительно отбрасываются.
    Размер окна зависит только от кадра и aspect ratio; меняются только x, y.
    """
    crop_w, crop_h = calculate_crop_size(frame_w, frame_h, target_aspect)
    clipped = []
    for face in faces or []:
        box = _clip_face_box(face, frame_w, frame_h)
        if box is not None:
            clipped.append(box)

    clipped = filter_incidental_faces(clipped, min_area_ratio=min_area_ratio)
    if not clipped:
        return center_crop(frame_w, frame_h, crop_w, crop_h)
    if len(clipped) == 1:
        return crop_for_single_face(clipped[0], frame_w, frame_h, crop_w, crop_h)

    center = weighted_face_center(clipped, frame_w, frame_h)
    if center is None:
        return center_crop(frame_w, frame_h, crop_w, crop_h)
    return _crop_around_center(center[0], center[1], frame_w, frame_h, crop_w, crop_h)


def _select_evenly_spaced(items, max_count):
    if max_count <= 0 or len(items) <= max_count:
        return list(items)
    if max_count == 1:
        return [items[len(items) // 2]]

    selected = []
    used_indexes = set()
    last_index = len(items) - 1
    for i in range(max_count):
        raw_idx = int(round((i * last_index) / float(max_count - 1)))
        idx = raw_idx
        while idx in used_indexes and idx < last_index:
            idx += 1
        while idx in used_indexes and idx > 0:
            idx -= 1
        used_indexes.add(idx)
        selected.append(items[idx])
    return selected


def _build_crop_filter(crop_rect, target_width, target_height):
    """Собирает -vf для crop + scale до целевого вертикального размера."""
    x, y, w, h = crop_rect
    return (
        f"crop={w}:{h}:{x}:{y},"
        f"scale={target_width}:{target_height}:flags=lanczos,"
        f"setsar=1"
    )
