"""markdowner のコマンドラインインターフェース。"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Iterable

from .builder import render_documents
from .config import DEFAULT_SOURCE_EXTENSION, BuildConfig
from .env import current_defaults, load_env_file
from .errors import WatchSubscriptionError
from .paths import resolve_paths
from .rendering import RenderJob
from .templates import load_style, load_template
from .watching import watch_documents


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Markdown ファイルをスタイル付きの HTML ファイルへ変換します")
    parser.add_argument(
        "input",
        nargs="?",
        type=Path,
        default=None,
        help="入力ファイルまたはディレクトリ (-f より優先)",
    )
    parser.add_argument(
        "-f",
        "--input",
        dest="input_flag",
        type=Path,
        default=None,
        help="入力ファイルまたはディレクトリ。ディレクトリなら配下の Markdown を再帰的に変換 (省略時はカレントディレクトリ)",
    )
    parser.add_argument(
        "-o",
        "--out",
        dest="output_dir",
        type=Path,
        default=None,
        help="出力ディレクトリ (省略時は Markdown と同じ場所)",
    )
    parser.add_argument("-i", "--image-inline", dest="image_inline", action="store_true", help="画像を base64 で HTML に埋め込む")
    parser.add_argument("-w", "--watch", dest="watch", action="store_true", help="変更を監視して HTML を再生成し続ける")
    parser.add_argument("-t", "--template", dest="template", type=Path, default=None, help="HTML テンプレートファイル")
    parser.add_argument(
        "-s",
        "--style",
        dest="styles",
        type=Path,
        action="append",
        default=None,
        help="スタイルシート (複数指定可、改行区切りで連結)",
    )
    parser.add_argument("--ext", dest="extension", type=str, default=DEFAULT_SOURCE_EXTENSION, help="変換対象の拡張子")
    parser.add_argument(
        "--concurrency",
        dest="concurrency",
        type=int,
        default=None,
        help="同時レンダリング数 (省略時は CPU 数から自動推定)",
    )
    parser.add_argument(
        "--timeout",
        dest="timeout",
        type=float,
        default=None,
        help="1 ファイルあたりのレンダリング制限時間 (秒)",
    )
    parser.add_argument("--env", dest="env_file", type=Path, default=None, help="読み込む .env ファイル")
    parser.add_argument("--verbose", dest="verbose", action="store_true", help="進捗ログを表示")
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    load_env_file(args.env_file)
    _apply_env_defaults(args)
    _validate_args(args)
    _configure_logging(args.verbose)
    logger = logging.getLogger("markdowner")

    try:
        template = load_template(args.template)
        style = load_style(args.styles)
    except OSError as exc:
        print(f"[エラー] テンプレートまたはスタイルを読み込めません: {exc}", file=sys.stderr)
        raise SystemExit(2)

    config = BuildConfig.from_args(
        args.input_path,
        args.base_dir,
        args.out_dir,
        template=template,
        style=style,
        image_inline=args.image_inline,
        watch=args.watch,
        source_extension=args.extension,
        max_concurrency=args.concurrency,
        render_timeout=args.timeout,
    )
    logger.info("初期化が完了しました。")

    summary = render_documents(config, logger=logger)
    print(json.dumps(summary.to_dict(), ensure_ascii=False))

    if config.watch:
        _run_watch(config, logger)
        return
    if summary.failed:
        raise SystemExit(1)


def _run_watch(config: BuildConfig, logger: logging.Logger) -> None:
    job = RenderJob(config.render, logger=logger)
    logger.info("監視を開始します...")
    try:
        asyncio.run(
            watch_documents(
                config.watch_root,
                job,
                extension=config.source_extension,
                target=config.watch_target,
                logger=logger,
            )
        )
    except KeyboardInterrupt:
        logger.info("監視を中断しました。")
    except WatchSubscriptionError as exc:
        print(f"[エラー] {exc}", file=sys.stderr)
        raise SystemExit(1)


def _apply_env_defaults(args: argparse.Namespace) -> None:
    defaults = current_defaults()
    if args.template is None:
        args.template = defaults.template
    if not args.styles:
        args.styles = list(defaults.styles)
    if args.concurrency is None:
        args.concurrency = defaults.concurrency


def _validate_args(args: argparse.Namespace) -> None:
    errors: list[str] = []
    requested_input = args.input if args.input is not None else args.input_flag
    try:
        args.input_path, args.base_dir, args.out_dir = resolve_paths(requested_input, args.output_dir)
    except FileNotFoundError as exc:
        errors.append(f"[エラー] {exc}")
    else:
        if args.out_dir.exists() and not args.out_dir.is_dir():
            errors.append(f"[エラー] 出力パスがディレクトリではありません: {args.out_dir}")

    if not args.extension.strip():
        errors.append("[エラー] --ext には拡張子を指定してください。")
    if args.concurrency is not None and args.concurrency < 1:
        errors.append("[エラー] --concurrency には 1 以上の整数を指定してください。")
    if args.timeout is not None and args.timeout <= 0:
        errors.append("[エラー] --timeout には 0 より大きい数値を指定してください。")
    if args.template is not None and not Path(args.template).is_file():
        errors.append(f"[エラー] テンプレートファイルが見つかりません: {args.template}")
    for style_path in args.styles or ():
        if not Path(style_path).is_file():
            errors.append(f"[エラー] スタイルシートが見つかりません: {style_path}")

    if errors:
        for message in errors:
            print(message, file=sys.stderr)
        raise SystemExit(2)


def _configure_logging(verbose: bool) -> None:
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


if __name__ == "__main__":
    main()
