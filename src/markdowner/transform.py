"""Markdown のバイト列を完成した HTML ドキュメントへ変換するパイプライン。"""

from __future__ import annotations

import codecs
import logging
from pathlib import Path
from typing import Sequence

import markdown
from bs4 import BeautifulSoup, NavigableString, PageElement, Tag
from charset_normalizer import from_bytes as detect_charset
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .assets import AssetResolver
from .config import RenderConfig
from .errors import HighlightError, ParseError
from .templates import CONTENT_PLACEHOLDER, STYLE_PLACEHOLDER

MARKDOWN_EXTENSIONS: Sequence[str] = ("extra", "sane_lists")
CODE_BLOCK_SELECTOR = 'code[class*="language-"]'
IMAGE_SELECTOR = "img[src]"
LANGUAGE_CLASS_PREFIX = "language-"


def decode_source(data: bytes) -> str:
    """Markdown ソースのバイト列を文字列へ復号します。"""

    if not data:
        return ""
    if data.startswith(codecs.BOM_UTF8):
        return data[len(codecs.BOM_UTF8) :].decode("utf-8", errors="replace")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        pass
    result = detect_charset(data).best()
    if result is not None and result.encoding:
        try:
            return data.decode(result.encoding, errors="replace")
        except LookupError:
            pass
    return data.decode("utf-8", errors="replace")


def splice_template(template: str, content: str, style: str) -> str:
    """テンプレートのプレースホルダーを一度の走査で置換します。

    置換後の文字列は再走査しないため、本文にプレースホルダーと同じ文字列が
    含まれていてもそのまま残ります。
    """

    pieces = template.split(CONTENT_PLACEHOLDER)
    return content.join(piece.replace(STYLE_PLACEHOLDER, style) for piece in pieces)


def code_language(node: Tag) -> str | None:
    """``language-xxx`` クラスから言語名を取り出します。"""

    classes = node.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    for name in classes:
        if name.startswith(LANGUAGE_CLASS_PREFIX) and len(name) > len(LANGUAGE_CLASS_PREFIX):
            return name[len(LANGUAGE_CLASS_PREFIX) :]
    return None


def highlight_code(code: str, language: str) -> str:
    """コードを Pygments で span マークアップへ変換します。"""

    try:
        lexer = get_lexer_by_name(language)
    except ClassNotFound as exc:
        raise HighlightError(f"未対応の言語です: {language}") from exc
    try:
        return highlight(code, lexer, HtmlFormatter(nowrap=True))
    except Exception as exc:
        raise HighlightError(f"ハイライトに失敗しました ({language}): {exc}") from exc


class DocumentTransformer:
    """1 ドキュメント分の Markdown を HTML テンプレートへ流し込みます。"""

    def __init__(
        self,
        config: RenderConfig,
        logger: logging.Logger | None = None,
        asset_resolver: AssetResolver | None = None,
    ) -> None:
        self._config = config
        self._logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._assets = asset_resolver or AssetResolver(config, logger=self._logger)

    def transform(self, raw: bytes, source_dir: Path, *, source_path: Path | None = None) -> bytes:
        html = self._convert_markdown(raw, source_path)
        soup = self._build_tree(html, source_path)
        self._highlight_code_blocks(soup, source_path)
        self._resolve_assets(soup, source_dir)
        content = self._serialize(soup, source_path)
        output = splice_template(self._config.template, content, self._config.style)
        return output.encode("utf-8")

    # Internal helpers -------------------------------------------------

    def _convert_markdown(self, raw: bytes, source_path: Path | None) -> str:
        try:
            text = decode_source(raw)
            return markdown.markdown(text, extensions=list(MARKDOWN_EXTENSIONS), output_format="html")
        except Exception as exc:
            raise ParseError(source_path, f"Markdown の変換に失敗しました: {exc}", stage="markdown") from exc

    def _build_tree(self, html: str, source_path: Path | None) -> BeautifulSoup:
        try:
            return BeautifulSoup(html, "lxml")
        except Exception as exc:
            raise ParseError(source_path, f"HTML の解析に失敗しました: {exc}", stage="tree") from exc

    def _highlight_code_blocks(self, soup: BeautifulSoup, source_path: Path | None) -> None:
        for node in soup.select(CODE_BLOCK_SELECTOR):
            language = code_language(node)
            if language is None:
                continue
            try:
                formatted = highlight_code(node.get_text(), language)
            except HighlightError as exc:
                self._logger.warning("シンタックスハイライトをスキップしました (%s): %s", source_path or "-", exc)
                continue
            fragment = BeautifulSoup(formatted, "html.parser")
            node.clear()
            for child in list(fragment.contents):
                node.append(child.extract())

    def _resolve_assets(self, soup: BeautifulSoup, source_dir: Path) -> None:
        for node in soup.select(IMAGE_SELECTOR):
            self._assets.resolve(node, source_dir)

    def _serialize(self, soup: BeautifulSoup, source_path: Path | None) -> str:
        # lxml は断片を <html><head>/<body> で包むので、その中身だけを取り出す。
        # <html> の外に置かれたコメントなどはそのまま残す
        try:
            if soup.html is None:
                return soup.decode()
            chunks: list[str] = []
            for node in soup.contents:
                if node is soup.html:
                    for child in node.contents:
                        if isinstance(child, Tag) and child.name in ("head", "body"):
                            chunks.append(child.decode_contents())
                        else:
                            chunks.append(_decode_node(child))
                else:
                    chunks.append(_decode_node(node))
            return "".join(chunks)
        except Exception as exc:
            raise ParseError(source_path, f"HTML のシリアライズに失敗しました: {exc}", stage="serialize") from exc


def _decode_node(node: PageElement) -> str:
    if isinstance(node, NavigableString):
        return node.output_ready()
    return node.decode()
