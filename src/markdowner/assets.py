"""ドキュメントが参照するローカル画像の埋め込み・コピー。"""

from __future__ import annotations

import base64
import logging
import mimetypes
import shutil
from pathlib import Path
from urllib.parse import unquote, urlsplit

from bs4 import Tag

from .config import RenderConfig
from .errors import AssetError
from .paths import relative_to_base

DEFAULT_MIME_TYPE = "application/octet-stream"


def is_remote_reference(src: str) -> bool:
    """URL スキームを持つ参照 (http/https/data など) かどうか。"""

    if src.startswith("//"):
        return True
    scheme = urlsplit(src).scheme
    # 1 文字のスキームは Windows のドライブレターとみなす
    return len(scheme) > 1


def local_reference_path(src: str) -> Path:
    """クエリやフラグメントを除き、パーセントエンコードを戻したパス。"""

    parts = urlsplit(src)
    return Path(unquote(parts.path))


def encode_data_uri(path: Path) -> str:
    """ファイルを base64 で ``data:`` URI に変換します。"""

    payload = base64.b64encode(path.read_bytes()).decode("ascii")
    mime, _ = mimetypes.guess_type(path.name)
    return f"data:{mime or DEFAULT_MIME_TYPE};base64,{payload}"


def copy_file(source: Path, destination: Path) -> None:
    """ファイルをバイト単位でコピーします。同一パスなら何もしません。"""

    if source.resolve() == destination.resolve():
        return
    shutil.copyfile(source, destination)


class AssetResolver:
    """``<img>`` 要素の参照先を data URI へ書き換えるか出力先へコピーします。"""

    def __init__(self, config: RenderConfig, logger: logging.Logger | None = None) -> None:
        self._config = config
        self._logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def resolve(self, node: Tag, source_dir: Path) -> None:
        src = (node.get("src") or "").strip()
        if not src or is_remote_reference(src):
            return
        reference = local_reference_path(src)
        try:
            if self._config.image_inline:
                node["src"] = self._inline(source_dir, reference)
            else:
                self._copy(source_dir, reference)
        except AssetError as exc:
            self._logger.warning("アセットの処理に失敗しました: %s", exc)
            self._logger.debug("アセット処理の詳細", exc_info=exc)

    def _inline(self, source_dir: Path, reference: Path) -> str:
        path = source_dir / reference
        try:
            return encode_data_uri(path)
        except OSError as exc:
            raise AssetError(f"画像を読み込めません: {path} ({exc})") from exc

    def _copy(self, source_dir: Path, reference: Path) -> None:
        source = source_dir / reference
        destination = self.destination_for(source_dir, reference)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise AssetError(f"アセット用ディレクトリを作成できません: {destination.parent} ({exc})") from exc
        try:
            copy_file(source, destination)
        except OSError as exc:
            raise AssetError(f"アセットをコピーできません: {source} -> {destination} ({exc})") from exc

    def destination_for(self, source_dir: Path, reference: Path) -> Path:
        """ドキュメントと同じ相対位置を出力ディレクトリ側に再現したコピー先。"""

        try:
            offset = relative_to_base(source_dir, self._config.base_dir)
        except ValueError as exc:
            raise AssetError(str(exc)) from exc
        if reference.is_absolute():
            reference = Path(reference.name)
        return Path(self._config.out_dir) / offset / reference
