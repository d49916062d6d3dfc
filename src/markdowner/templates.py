"""HTML テンプレートとスタイルシートの取得。"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from pygments.formatters import HtmlFormatter

CONTENT_PLACEHOLDER = "{{{content}}}"
STYLE_PLACEHOLDER = "{{{style}}}"

# ハイライト結果の span に当てるセレクタ
HIGHLIGHT_SCOPE = "pre > code"
HIGHLIGHT_STYLE = "default"


DEFAULT_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta http-equiv="Content-type" content="text/html;charset=UTF-8">
{{{style}}}
</head>
<body>
{{{content}}}
</body>
</html>
"""


DEFAULT_STYLE = """
body {
	color: rgba(0,0,0,.87);
	font-family: "Segoe WPC", "Segoe UI", "SFUIText-Light", "HelveticaNeue-Light", sans-serif, "Droid Sans Fallback";
	font-size: 14px;
	line-height: 22px;
	margin: 0 auto;
	padding: 0 12px;
	max-width: 700px;
	word-wrap: break-word;
}

img {
	max-width: 100%;
	max-height: 100%;
	display: block;
}

a {
	color: #4080D0;
	text-decoration: none;
}
a:hover {
	text-decoration: underline;
}

table {
	border-collapse: collapse;
}
table > thead > tr > th {
	text-align: left;
	border-bottom: 1px solid;
}
table > thead > tr > th,
table > tbody > tr > td {
	padding: 5px 10px;
}
table > tbody > tr + tr > td {
	border-top: 1px solid;
}

blockquote {
	background: rgba(127, 127, 127, 0.1);
	border-left: 5px solid rgba(0, 122, 204, 0.5);
	margin: 0 7px 0 5px;
	padding: 0 16px 0 10px;
}

code {
	font-family: Menlo, Monaco, Consolas, "Droid Sans Mono", "Courier New", monospace, "Droid Sans Fallback";
	font-size: 14px;
	line-height: 19px;
}

pre {
	background-color: #f8f8f8;
	border: 1px solid #cccccc;
	border-radius: 3px;
	padding: 16px;
	overflow-x: auto;
	white-space: pre-wrap;
	overflow-wrap: break-word;
}

hr {
	border: 0;
	height: 2px;
	border-bottom: 2px solid;
}

h1 {
	line-height: 1.2;
	padding-bottom: 0.3em;
	text-align: center;
}

h1, h2, h3 {
	font-weight: normal;
}

h2 {
	border-bottom: 2px solid #d4d4d4;
	margin: 25px 0;
	padding-bottom: 10px;
}

h3 {
	font-size: 1.4em;
	margin: 25px 0;
}

:not(pre) > code {
	color: #A31515;
	font-size: inherit;
}

li {
	padding-top: 5px;
	padding-bottom: 5px;
}
"""


def highlight_style_defs(style: str = HIGHLIGHT_STYLE) -> str:
    """Pygments のトークンクラス用 CSS を返します。"""

    return HtmlFormatter(style=style).get_style_defs(HIGHLIGHT_SCOPE)


def wrap_style(css: str) -> str:
    """CSS を ``<style>`` ブロックで包みます。"""

    return "\n<style>\n" + css + "\n</style>\n"


def load_template(path: Path | None = None) -> str:
    """ユーザー指定のテンプレート、未指定なら既定テンプレートを返します。

    ユーザー指定のファイルは必ず存在する前提なので、読み込みエラーはそのまま送出します。
    """

    if path is None:
        return DEFAULT_TEMPLATE
    return Path(path).read_text(encoding="utf-8")


def load_style(paths: Iterable[Path] | None = None) -> str:
    """スタイルシートを読み込み ``<style>`` ブロックとして返します。

    複数指定時は改行区切りで連結します。未指定なら既定 CSS とハイライト用 CSS を使います。
    """

    path_list = [Path(path) for path in (paths or ())]
    if not path_list:
        return wrap_style(DEFAULT_STYLE + "\n" + highlight_style_defs())
    chunks = [path.read_text(encoding="utf-8") for path in path_list]
    return wrap_style("\n".join(chunks))
