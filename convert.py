# convert.py — командная строка: горизонтальное видео -> вертикальное

import argparse
import logging
import sys

from dotenv import load_dotenv

# Загружаем переменные окружения из .env файла
load_dotenv()

from cache import clear_cache, format_cache_size, get_cache_size
from errors import FaceifyError
from settings import load_settings, get_output_directory, get_target_size
from vertical import convert_video


def build_parser():
    parser = argparse.ArgumentParser(
        prog="faceify",
        description="Конвертирует горизонтальное видео в вертикальное 9:16 с crop по лицам.",
    )
    parser.add_argument("input", nargs="?", help="путь к исходному видео")
    parser.add_argument("--output-dir", help="куда сохранить результат")
    parser.add_argument("--width", type=int, help="ширина итогового видео")
    parser.add_argument("--height", type=int, help="высота итогового видео")
    parser.add_argument("--no-faces", action="store_true", help="без детекции лиц, центральный crop")
    parser.add_argument("--backend", choices=["auto", "yunet", "haar"], help="детектор лиц")
    parser.add_argument("--scene-backend", choices=["ffmpeg", "scenedetect"], help="движок поиска смен сцен")
    parser.add_argument("--settings", help="путь к JSON-файлу настроек")
    parser.add_argument("--clear-cache", action="store_true", help="удалить таймлайны лиц старше 30 дней и выйти")
    return parser


def main(argv=None):
    """Запуск конвертации. Возвращает код выхода."""
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=logging.INFO
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.clear_cache:
        deleted_count, deleted_size = clear_cache()
        print(f"Удалено файлов: {deleted_count} ({deleted_size}), в кэше осталось {format_cache_size(get_cache_size())}")
        return 0
    if not args.input:
        parser.error("нужен путь к исходному видео")

    settings = load_settings(args.settings)

    target_width, target_height = get_target_size(settings)
    try:
        result = convert_video(
            args.input,
            output_dir=args.output_dir or get_output_directory(settings),
            target_width=args.width or target_width,
            target_height=args.height or target_height,
            detect_faces=settings["detect_faces"] and not args.no_faces,
            detector_backend=args.backend or settings["detector_backend"],
            scene_backend=args.scene_backend or settings["scene_backend"],
            scene_threshold=settings["scene_threshold"],
            render_workers=settings["render_workers"],
            encode_preset=settings["encode_preset"],
            use_timeline_cache=settings["use_timeline_cache"],
            model_dir=settings["model_dir"],
        )
    except FaceifyError as e:
        logging.error("Ошибка конвертации: %s", e)
        print(f"Ошибка: {e}", file=sys.stderr)
        return 1

    print(result["converted_path"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
