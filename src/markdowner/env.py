"""環境変数および `.env` ファイルから既定値を読み込むローダー。"""

from __future__ import annotations

from dataclasses import dataclass
import os
import re
from pathlib import Path
from typing import Mapping

DEFAULT_ENV_NAME = ".env"
TEMPLATE_ENV = "MARKDOWNER_TEMPLATE"
STYLE_ENV = "MARKDOWNER_STYLE"
CONCURRENCY_ENV = "MARKDOWNER_CONCURRENCY"

# KEY=value / export KEY="value" / KEY='value'  # 末尾コメント
_ASSIGNMENT = re.compile(
    r"""^(?:export\s+)?(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=\s*
        (?:"(?P<double>[^"]*)"|'(?P<single>[^']*)'|(?P<bare>[^#]*?))
        \s*(?:\#.*)?$""",
    re.VERBOSE,
)


@dataclass(slots=True)
class EnvDefaults:
    """コマンドライン引数が省略されたときに使う既定値。"""

    template: Path | None
    styles: tuple[Path, ...]
    concurrency: int | None


def parse_env_line(line: str) -> tuple[str, str] | None:
    """`.env` の 1 行を ``(キー, 値)`` へ分解します。代入でない行は None。"""

    match = _ASSIGNMENT.match(line.strip())
    if match is None:
        return None
    for group in ("double", "single", "bare"):
        value = match.group(group)
        if value is not None:
            return match.group("key"), value
    return match.group("key"), ""


def load_env_file(path: str | Path | None = None) -> dict[str, str]:
    """`.env` ファイルを読み込み、未設定の環境変数だけを補完します。"""

    env_path = _locate_env_file(path)
    if not env_path.is_file():
        return {}
    pairs = (parse_env_line(line) for line in env_path.read_text(encoding="utf-8").splitlines())
    loaded = dict(pair for pair in pairs if pair is not None)
    for key, value in loaded.items():
        os.environ.setdefault(key, value)
    return loaded


def current_defaults(source: Mapping[str, str] | None = None) -> EnvDefaults:
    """現在の環境変数から既定値を読み取ります。"""

    env = os.environ if source is None else source
    template = env.get(TEMPLATE_ENV) or None
    styles = tuple(Path(chunk) for chunk in (env.get(STYLE_ENV) or "").split(os.pathsep) if chunk.strip())
    return EnvDefaults(
        template=Path(template) if template else None,
        styles=styles,
        concurrency=_parse_positive_int(env.get(CONCURRENCY_ENV)),
    )


def _parse_positive_int(raw: str | None) -> int | None:
    if raw is None or not raw.strip():
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def _locate_env_file(path: str | Path | None) -> Path:
    candidate = Path.cwd() if path is None else Path(path)
    return candidate / DEFAULT_ENV_NAME if candidate.is_dir() else candidate
