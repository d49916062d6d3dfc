"""markdowner パイプラインの設定モデル群。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_SOURCE_EXTENSION = ".md"
DEFAULT_OUTPUT_EXTENSION = ".html"


def normalize_extension(extension: str) -> str:
    """拡張子を先頭ドット付きの小文字へ揃えます。"""

    cleaned = extension.strip().lower()
    if not cleaned:
        raise ValueError("拡張子が空です。")
    if not cleaned.startswith("."):
        cleaned = "." + cleaned
    return cleaned


@dataclass(frozen=True, slots=True)
class RenderConfig:
    """1 回の実行中に全レンダリングで共有される不変の設定。"""

    template: str
    style: str
    base_dir: Path
    out_dir: Path
    image_inline: bool = False
    output_extension: str = DEFAULT_OUTPUT_EXTENSION


@dataclass(slots=True)
class BuildConfig:
    """一括レンダリングと監視モードを束ねる設定。"""

    input_path: Path
    render: RenderConfig
    watch: bool = False
    source_extension: str = DEFAULT_SOURCE_EXTENSION
    max_concurrency: int | None = None
    render_timeout: float | None = None

    @property
    def watch_root(self) -> Path:
        """監視対象のディレクトリ (入力がファイルならその親)。"""

        return self.input_path if self.input_path.is_dir() else self.input_path.parent

    @property
    def watch_target(self) -> Path | None:
        """入力が単一ファイルのとき、監視中に再レンダリングする唯一のパス。"""

        return None if self.input_path.is_dir() else self.input_path

    @classmethod
    def from_args(
        cls,
        input_path: Path,
        base_dir: Path,
        out_dir: Path,
        *,
        template: str,
        style: str,
        image_inline: bool = False,
        watch: bool = False,
        source_extension: str = DEFAULT_SOURCE_EXTENSION,
        max_concurrency: Optional[int] = None,
        render_timeout: Optional[float] = None,
    ) -> "BuildConfig":
        render_config = RenderConfig(
            template=template,
            style=style,
            base_dir=Path(base_dir).resolve(),
            out_dir=Path(out_dir).resolve(),
            image_inline=image_inline,
        )
        concurrency = max(1, max_concurrency) if max_concurrency is not None else None
        timeout = render_timeout if render_timeout is not None and render_timeout > 0 else None
        return cls(
            input_path=Path(input_path).resolve(),
            render=render_config,
            watch=watch,
            source_extension=normalize_extension(source_extension),
            max_concurrency=concurrency,
            render_timeout=timeout,
        )
