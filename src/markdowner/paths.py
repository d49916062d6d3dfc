"""入力パスと出力パスの対応付け、および対象ファイルの探索。"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Iterator

from .config import DEFAULT_OUTPUT_EXTENSION, DEFAULT_SOURCE_EXTENSION
from .errors import PathError


def drop_extension(path: Path | str) -> Path:
    """末尾の拡張子だけを取り除きます。"""

    candidate = Path(path)
    return candidate.with_suffix("") if candidate.suffix else candidate


def change_extension(path: Path | str, extension: str) -> Path:
    """末尾の拡張子だけを置き換えます (``notes.v1.md`` → ``notes.v1.html``)。"""

    if not extension.startswith("."):
        extension = "." + extension
    stem = drop_extension(path)
    return stem.with_name(stem.name + extension)


def relative_to_base(path: Path | str, base_dir: Path | str) -> Path:
    """``base_dir`` をパス要素単位で取り除いた相対パスを返します。

    比較は ``normpath`` と ``normcase`` の後に行うため、区切り文字や
    (大文字小文字を区別しない環境での) 表記揺れに影響されません。
    ``base_dir`` が前方一致しない場合は ``ValueError`` を送出します。
    """

    target = Path(os.path.normpath(path))
    base = Path(os.path.normpath(base_dir))
    target_parts = target.parts
    base_parts = base.parts
    if len(target_parts) < len(base_parts):
        raise ValueError(f"{path} は {base_dir} の配下にありません")
    for ours, theirs in zip(target_parts, base_parts):
        if os.path.normcase(ours) != os.path.normcase(theirs):
            raise ValueError(f"{path} は {base_dir} の配下にありません")
    return Path(*target_parts[len(base_parts) :]) if len(target_parts) > len(base_parts) else Path()


def output_path(
    input_path: Path | str,
    out_dir: Path | str,
    base_dir: Path | str,
    extension: str = DEFAULT_OUTPUT_EXTENSION,
) -> Path:
    """入力ドキュメントのパスを出力 HTML のパスへ写像します。"""

    try:
        relative = relative_to_base(input_path, base_dir)
    except ValueError as exc:
        raise PathError(input_path, str(exc)) from exc
    if relative == Path():
        raise PathError(input_path, f"入力パスがベースディレクトリと同一です: {base_dir}")
    return change_extension(Path(out_dir) / relative, extension)


def is_target_document(path: Path, extension: str = DEFAULT_SOURCE_EXTENSION) -> bool:
    """変換対象のドキュメントかどうか (拡張子一致かつディレクトリでない)。"""

    if path.suffix.lower() != extension.lower():
        return False
    return not path.is_dir()


def discover_documents(path: Path, extension: str = DEFAULT_SOURCE_EXTENSION) -> list[Path]:
    """ファイルならそれ自身、ディレクトリなら配下の対象ファイルを再帰的に列挙します。"""

    if not path.exists():
        raise FileNotFoundError(f"入力パスが見つかりません: {path}")
    if not path.is_dir():
        return [path]
    return sorted(_iter_documents(path, extension))


def _iter_documents(directory: Path, extension: str) -> Iterable[Path]:
    for candidate in directory.rglob("*"):
        if not candidate.is_file():
            continue
        if candidate.suffix.lower() == extension.lower():
            yield candidate


def iter_directories(root: Path) -> Iterator[Path]:
    """``root`` 自身を含む配下の全ディレクトリを列挙します。"""

    if not root.is_dir():
        return
    yield root
    for current, dirnames, _ in os.walk(root):
        dirnames.sort()
        for name in dirnames:
            yield Path(current) / name


def resolve_paths(input_arg: Path | str | None, output_arg: Path | str | None) -> tuple[Path, Path, Path]:
    """コマンドライン引数から (入力, ベース, 出力) の絶対パスを求めます。

    * 入力未指定ならカレントディレクトリ
    * ベースは入力がディレクトリならそれ自身、ファイルならその親
    * 出力未指定ならベースと同じ場所
    """

    if input_arg is None or str(input_arg) == "":
        input_path = Path.cwd().resolve()
    else:
        input_path = Path(input_arg).resolve()
        if not input_path.exists():
            raise FileNotFoundError(f"入力パスが存在しません: {input_path}")

    base_dir = input_path if input_path.is_dir() else input_path.parent
    if output_arg is None or str(output_arg) == "":
        out_dir = base_dir
    else:
        out_dir = Path(output_arg).resolve()
    return input_path, base_dir, out_dir
