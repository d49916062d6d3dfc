from __future__ import annotations

import os
from pathlib import Path

import pytest

from markdowner import env


def test_load_env_file_populates_missing_variables(tmp_path: Path, monkeypatch) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text(
        """
        # comment
        MARKDOWNER_TEMPLATE="/tmp/template.html"
        export MARKDOWNER_CONCURRENCY=4
        MARKDOWNER_STYLE=ignored.css
        """,
        encoding="utf-8",
    )
    # setenv してから delenv することで、読み込んだ値もテスト後に元へ戻る
    for name in ("MARKDOWNER_TEMPLATE", "MARKDOWNER_CONCURRENCY"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    monkeypatch.setenv("MARKDOWNER_STYLE", "preserve.css")

    loaded = env.load_env_file(tmp_path)

    assert loaded["MARKDOWNER_TEMPLATE"] == "/tmp/template.html"
    assert os.environ["MARKDOWNER_CONCURRENCY"] == "4"
    # 既存の環境変数は上書きしない
    assert os.environ["MARKDOWNER_STYLE"] == "preserve.css"


def test_load_env_file_missing(tmp_path: Path) -> None:
    assert env.load_env_file(tmp_path / "missing.env") == {}


def test_current_defaults_parses_values() -> None:
    source = {
        "MARKDOWNER_TEMPLATE": "template.html",
        "MARKDOWNER_STYLE": os.pathsep.join(["a.css", "b.css"]),
        "MARKDOWNER_CONCURRENCY": "3",
    }

    defaults = env.current_defaults(source)

    assert defaults.template == Path("template.html")
    assert defaults.styles == (Path("a.css"), Path("b.css"))
    assert defaults.concurrency == 3


def test_current_defaults_ignores_invalid_concurrency() -> None:
    defaults = env.current_defaults({"MARKDOWNER_CONCURRENCY": "many"})

    assert defaults.template is None
    assert defaults.styles == ()
    assert defaults.concurrency is None


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("KEY=value", ("KEY", "value")),
        ("export KEY = 'quoted # kept'", ("KEY", "quoted # kept")),
        ('KEY="a b"  # trailing', ("KEY", "a b")),
        ("KEY=value # trailing", ("KEY", "value")),
        ("KEY=", ("KEY", "")),
        ("# KEY=value", None),
        ("not an assignment", None),
        ("", None),
    ],
)
def test_parse_env_line(line: str, expected) -> None:
    assert env.parse_env_line(line) == expected
