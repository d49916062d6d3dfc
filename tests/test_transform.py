from __future__ import annotations

import codecs
from pathlib import Path

import markdown
import pytest
from bs4 import BeautifulSoup

from markdowner.config import RenderConfig
from markdowner.errors import HighlightError
from markdowner.templates import DEFAULT_TEMPLATE, load_style
from markdowner.transform import (
    MARKDOWN_EXTENSIONS,
    DocumentTransformer,
    code_language,
    decode_source,
    highlight_code,
    splice_template,
)


def _transformer(tmp_path: Path, *, template: str = "{{{style}}}|{{{content}}}", image_inline: bool = False) -> DocumentTransformer:
    config = RenderConfig(
        template=template,
        style="STYLE",
        base_dir=tmp_path,
        out_dir=tmp_path / "out",
        image_inline=image_inline,
    )
    return DocumentTransformer(config)


def test_plain_document_round_trips_into_template(tmp_path: Path) -> None:
    source = "# Title\n\nHello world.\n"
    expected_content = markdown.markdown(source, extensions=list(MARKDOWN_EXTENSIONS), output_format="html")

    output = _transformer(tmp_path).transform(source.encode("utf-8"), tmp_path).decode("utf-8")

    assert output == "STYLE|" + expected_content
    assert "<html>" not in output
    assert "<body>" not in output


def test_all_placeholders_are_replaced(tmp_path: Path) -> None:
    template = "{{{content}}}\n{{{style}}}\n{{{content}}}\n{{{style}}}"

    output = _transformer(tmp_path, template=template).transform(b"text", tmp_path).decode("utf-8")

    assert "{{{" not in output
    assert output.count("STYLE") == 2
    assert output.count("<p>text</p>") == 2


def test_placeholder_in_user_content_is_kept_literally(tmp_path: Path) -> None:
    raw = "Use {{{style}}} and {{{content}}} in templates.\n".encode("utf-8")

    output = _transformer(tmp_path).transform(raw, tmp_path).decode("utf-8")

    assert output.count("STYLE") == 1
    assert "Use {{{style}}} and {{{content}}} in templates." in output


def test_code_block_is_highlighted(tmp_path: Path) -> None:
    raw = b"```python\ndef greet():\n    return 1\n```\n"

    output = _transformer(tmp_path).transform(raw, tmp_path).decode("utf-8")

    soup = BeautifulSoup(output.split("|", 1)[1], "html.parser")
    code = soup.find("code")
    assert code is not None
    assert "language-python" in code.get("class", [])
    assert code.find("span") is not None
    assert code.get_text() == "def greet():\n    return 1\n"


def test_unknown_language_is_left_unchanged(tmp_path: Path, caplog) -> None:
    caplog.set_level("WARNING")
    raw = b"```nosuchlanguage\nx < y\n```\n"

    output = _transformer(tmp_path).transform(raw, tmp_path).decode("utf-8")

    assert '<code class="language-nosuchlanguage">x &lt; y\n</code>' in output
    assert any("ハイライト" in record.message for record in caplog.records)


def test_highlight_failure_does_not_stop_other_blocks(tmp_path: Path) -> None:
    raw = b"```nosuchlanguage\nplain\n```\n\n```python\nimport os\n```\n"

    output = _transformer(tmp_path).transform(raw, tmp_path).decode("utf-8")

    soup = BeautifulSoup(output.split("|", 1)[1], "html.parser")
    blocks = soup.find_all("code")
    assert blocks[0].find("span") is None
    assert blocks[1].find("span") is not None


def test_remote_image_is_untouched_in_inline_mode(tmp_path: Path) -> None:
    raw = b"![logo](https://example.com/logo.png)\n"

    output = _transformer(tmp_path, image_inline=True).transform(raw, tmp_path).decode("utf-8")

    assert 'src="https://example.com/logo.png"' in output


def test_local_image_is_inlined(tmp_path: Path) -> None:
    (tmp_path / "pic.gif").write_bytes(b"GIF89a")
    raw = b"![pic](pic.gif)\n"

    output = _transformer(tmp_path, image_inline=True).transform(raw, tmp_path).decode("utf-8")

    assert 'src="data:image/gif;base64,R0lGODlh"' in output


def test_default_template_and_style(tmp_path: Path) -> None:
    config = RenderConfig(
        template=DEFAULT_TEMPLATE,
        style=load_style(),
        base_dir=tmp_path,
        out_dir=tmp_path,
    )

    output = DocumentTransformer(config).transform(b"# Heading\n", tmp_path).decode("utf-8")

    assert output.startswith("<!DOCTYPE html>")
    assert "<style>" in output
    assert "<h1>Heading</h1>" in output
    assert output.count("<body>") == 1


def test_splice_template_is_single_pass() -> None:
    result = splice_template("[{{{content}}}]({{{style}}})", "{{{style}}}", "{{{content}}}")

    assert result == "[{{{style}}}]({{{content}}})"


def test_code_language() -> None:
    soup = BeautifulSoup('<code class="foo language-rust">x</code><code>y</code>', "html.parser")
    first, second = soup.find_all("code")

    assert code_language(first) == "rust"
    assert code_language(second) is None


def test_highlight_code_unknown_language() -> None:
    with pytest.raises(HighlightError):
        highlight_code("x", "nosuchlanguage")


def test_decode_source_handles_bom_and_utf8() -> None:
    assert decode_source(codecs.BOM_UTF8 + "見出し".encode("utf-8")) == "見出し"
    assert decode_source("本文".encode("utf-8")) == "本文"
    assert decode_source(b"") == ""


def test_leading_comment_is_kept(tmp_path: Path) -> None:
    raw = b"<!-- keep me -->\n\n# Title\n"

    output = _transformer(tmp_path).transform(raw, tmp_path).decode("utf-8")

    assert "<!-- keep me -->" in output
    assert "<h1>Title</h1>" in output
    assert output.index("<!-- keep me -->") < output.index("<h1>Title</h1>")
