from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from markdowner.config import BuildConfig, RenderConfig, normalize_extension


def test_from_args_normalizes_values(tmp_path: Path) -> None:
    config = BuildConfig.from_args(
        tmp_path,
        tmp_path,
        tmp_path / "out",
        template="{{{content}}}",
        style="",
        source_extension="MARKDOWN",
        max_concurrency=0,
        render_timeout=0,
    )

    assert config.source_extension == ".markdown"
    assert config.max_concurrency == 1
    assert config.render_timeout is None
    assert config.render.out_dir == (tmp_path / "out").resolve()
    assert config.render.base_dir.is_absolute()


def test_watch_root_for_file_input(tmp_path: Path) -> None:
    document = tmp_path / "doc.md"
    document.write_text("text", encoding="utf-8")

    config = BuildConfig.from_args(document, tmp_path, tmp_path, template="", style="")

    assert config.watch_root == tmp_path.resolve()


def test_render_config_is_immutable(tmp_path: Path) -> None:
    config = RenderConfig(template="", style="", base_dir=tmp_path, out_dir=tmp_path)

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.image_inline = True  # type: ignore[misc]


@pytest.mark.parametrize(("raw", "expected"), [("md", ".md"), (".MD", ".md"), (" .txt ", ".txt")])
def test_normalize_extension(raw: str, expected: str) -> None:
    assert normalize_extension(raw) == expected


def test_normalize_extension_rejects_empty() -> None:
    with pytest.raises(ValueError):
        normalize_extension("  ")


def test_watch_target_only_for_file_input(tmp_path: Path) -> None:
    document = tmp_path / "doc.md"
    document.write_text("text", encoding="utf-8")

    file_config = BuildConfig.from_args(document, tmp_path, tmp_path, template="", style="")
    dir_config = BuildConfig.from_args(tmp_path, tmp_path, tmp_path, template="", style="")

    assert file_config.watch_target == document.resolve()
    assert dir_config.watch_target is None
