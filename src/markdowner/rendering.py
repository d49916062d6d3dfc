"""1 ファイル分の読み込み・変換・書き出しを行うレンダリングジョブ。"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path

from .config import RenderConfig
from .errors import ReadError, RenderError, RenderTimeoutError, WriteError
from .paths import output_path
from .transform import DocumentTransformer


@dataclass(slots=True)
class RenderResult:
    """1 ドキュメントのレンダリング結果。"""

    source_path: Path
    output_path: Path | None = None
    error: RenderError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> str | None:
        return None if self.error is None else self.error.__class__.__name__


def write_atomic(path: Path, data: bytes) -> None:
    """一時ファイルへ書き込んでから置き換え、書きかけのファイルを見せないようにします。"""

    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as stream:
            stream.write(data)
        os.chmod(temp_name, 0o644)
        os.replace(temp_name, path)
    except BaseException:
        try:
            os.unlink(temp_name)
        except FileNotFoundError:
            pass
        raise


class RenderJob:
    """DocumentTransformer を包み、読み込みから書き出しまでを担当します。"""

    def __init__(
        self,
        config: RenderConfig,
        transformer: DocumentTransformer | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._transformer = transformer or DocumentTransformer(config, logger=self._logger)

    @property
    def config(self) -> RenderConfig:
        return self._config

    def render(self, path: Path, *, cancelled: threading.Event | None = None) -> Path:
        """``path`` をレンダリングし、書き出した HTML のパスを返します。

        ``cancelled`` が立っている場合は書き出さずに ``RenderTimeoutError`` を送出します。
        """

        source = Path(path)
        try:
            raw = source.read_bytes()
        except OSError as exc:
            raise ReadError(source, f"読み込みに失敗しました: {source} ({exc})") from exc

        document = self._transformer.transform(raw, source.parent, source_path=source)

        destination = output_path(
            source,
            self._config.out_dir,
            self._config.base_dir,
            self._config.output_extension,
        )
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WriteError(source, f"出力ディレクトリを作成できません: {destination.parent} ({exc})") from exc
        if cancelled is not None and cancelled.is_set():
            raise RenderTimeoutError(source, f"タイムアウト済みのため書き出しを中止しました: {destination}")
        try:
            write_atomic(destination, document)
        except OSError as exc:
            raise WriteError(source, f"書き出しに失敗しました: {destination} ({exc})") from exc
        return destination

    def run(self, path: Path, *, cancelled: threading.Event | None = None) -> RenderResult:
        """``render`` を実行し、ファイル単位のエラーを結果として返します。"""

        source = Path(path)
        try:
            destination = self.render(source, cancelled=cancelled)
        except RenderError as exc:
            return RenderResult(source_path=source, error=exc)
        return RenderResult(source_path=source, output_path=destination)
