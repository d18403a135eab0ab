"""vertical — конвертация горизонтального видео в вертикальное с crop, следующим за лицами.

Публичный API:
    convert_video(input_path, output_dir, ...)
    FaceDetector(backend, model_dir)

Реализация разнесена по подмодулям:
    vertical.sampling   — выбор таймстемпов для детекции
    vertical.geometry   — размер crop 9:16, агрегация face-box в один crop
    vertical.timeline   — заполнение пропусков, сглаживание, прореживание
    vertical.planning   — нарезка ключевых кадров на сегменты
    vertical.detection  — YuNet/Haar детекция, таймлайн лиц
    vertical.rendering  — FFmpeg: probe, сегменты, склейка, convert_video
"""

from vertical.rendering import convert_video  # noqa: F401
from vertical.detection import FaceDetector  # noqa: F401

from vertical.sampling import build_sample_timestamps, sample_timestamps  # noqa: F401
from vertical.geometry import calculate_crop_size, calculate_vertical_crop  # noqa: F401
from vertical.timeline import (  # noqa: F401
    build_crop_timeline,
    fill_timeline_gaps,
    smooth_crop_timeline,
    reduce_keyframes,
)
from vertical.planning import crops_are_static, plan_segments  # noqa: F401
