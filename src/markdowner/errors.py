"""レンダリングパイプラインで扱う例外の定義。"""

from __future__ import annotations

from pathlib import Path


class MarkdownerError(RuntimeError):
    """markdowner 全体の基底例外。"""


class RenderError(MarkdownerError):
    """1 ファイルのレンダリングを中断させる例外の基底クラス。"""

    def __init__(self, path: Path | str | None, message: str) -> None:
        self.path = Path(path) if path is not None else None
        super().__init__(message)


class ReadError(RenderError):
    """入力ファイルを読み込めなかった。"""


class ParseError(RenderError):
    """Markdown 変換・ツリー構築・シリアライズのいずれかに失敗した。"""

    def __init__(self, path: Path | str | None, message: str, *, stage: str) -> None:
        self.stage = stage
        super().__init__(path, f"[{stage}] {message}")


class PathError(RenderError):
    """出力パスの導出でベースディレクトリの前提が崩れた。"""


class WriteError(RenderError):
    """出力ファイルまたはディレクトリを作成できなかった。"""


class RenderTimeoutError(RenderError):
    """1 ファイルのレンダリングが制限時間内に終わらなかった。"""


class HighlightError(MarkdownerError):
    """コードブロックのハイライトに失敗した (ログのみ、致命的ではない)。"""


class AssetError(MarkdownerError):
    """画像などのアセット処理に失敗した (ログのみ、致命的ではない)。"""


class WatchSubscriptionError(MarkdownerError):
    """ファイル監視の購読に失敗した。"""

    def __init__(self, path: Path | str, reason: object) -> None:
        self.path = Path(path)
        super().__init__(f"ディレクトリを監視できません: {path} ({reason})")
