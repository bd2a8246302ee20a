"""WhatsApp response formatting.

Claude answers in Markdown (occasionally HTML). WhatsApp only understands a
small dialect: ``*bold*``, ``_italic_``, ``~strike~`` and backtick code, with
no headings, links or nested markup. This module converts one into the other.
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

logger = logging.getLogger(__name__)

MEDIA_ANALYSIS_PREFIX = "📄 *Analisis Media*"
MEDIA_ANALYSIS_EMPTY = "Maaf, saya tidak bisa menganalisis media ini."
ERROR_PREFIX = "❌ *Error*"
WELCOME_PREFIX = "👋 *Selamat Datang*"

BULLET = "•"

_HTML_TAG_RE = re.compile(
    r"</?(?:p|div|br|hr|h[1-6]|strong|b|em|i|del|s|strike|code|pre|blockquote|ul|ol|li|a)\b[^>]*>",
    re.IGNORECASE,
)
_FENCED_CODE_RE = re.compile(r"```.*?```", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"`[^`\n]+`")
_HEADER_RE = re.compile(r"^[ \t]*#{1,6}[ \t]+", re.MULTILINE)
_RULE_RE = re.compile(r"^[ \t]*([-*_])(?:[ \t]*\1){2,}[ \t]*$", re.MULTILINE)
_LIST_RE = re.compile(r"^[ \t]*(?:[-*+]|\d+[.)])[ \t]+", re.MULTILINE)
_QUOTE_RE = re.compile(r"^[ \t]*>[ \t]?", re.MULTILINE)
_LINK_RE = re.compile(r"!?\[([^\]]+)\]\([^)]*\)")
_STRONG_STAR_RE = re.compile(r"\*\*(.+?)\*\*")
_STRONG_UNDERSCORE_RE = re.compile(r"__(.+?)__")
_EM_STAR_RE = re.compile(r"(?<![*\w])\*(?!\s)(.+?)(?<!\s)\*(?![*\w])")
_STRIKE_RE = re.compile(r"~~(.+?)~~")

# Strong emphasis is parked on a sentinel so the *x* → _x_ pass cannot
# rewrite it a second time.
_BOLD_MARK = "\x01"
_CODE_MARK = "\x00"
# Code spans pulled out before HTML parsing; a private-use character survives
# BeautifulSoup untouched.
_RAW_CODE_MARK = "\ue000"


def _protect_code(text: str, mark: str = _CODE_MARK) -> tuple[str, list[str]]:
    saved: list[str] = []

    def save(match: re.Match) -> str:
        saved.append(match.group(0))
        return f"{mark}{len(saved) - 1}{mark}"

    text = _FENCED_CODE_RE.sub(save, text)
    text = _INLINE_CODE_RE.sub(save, text)
    return text, saved


def _restore_code(text: str, saved: list[str], mark: str = _CODE_MARK) -> str:
    for i, code in enumerate(saved):
        text = text.replace(f"{mark}{i}{mark}", code)
    return text


# ---------------------------------------------------------------------------
# HTML → Markdown
# ---------------------------------------------------------------------------


def _html_node_to_markdown(node) -> str:  # noqa: C901, PLR0911
    if isinstance(node, Comment):
        return ""
    if isinstance(node, NavigableString):
        return str(node)
    if not isinstance(node, Tag):
        return ""

    name = node.name
    if name == "pre":
        return f"\n```\n{node.get_text()}\n```\n"
    if name in ("ul", "ol"):
        lines = []
        for idx, item in enumerate(node.find_all("li", recursive=False), start=1):
            marker = f"{idx}." if name == "ol" else "-"
            lines.append(f"{marker} {_html_children(item).strip()}")
        return "\n" + "\n".join(lines) + "\n"

    inner = _html_children(node)
    if name in ("h1", "h2", "h3", "h4", "h5", "h6"):
        return f"\n{'#' * int(name[1])} {inner.strip()}\n"
    if name in ("strong", "b"):
        return f"**{inner}**"
    if name in ("em", "i"):
        return f"*{inner}*"
    if name in ("del", "s", "strike"):
        return f"~~{inner}~~"
    if name == "code":
        return f"`{inner}`"
    if name == "blockquote":
        quoted = "\n".join(f"> {line}" for line in inner.strip().splitlines())
        return f"\n{quoted}\n"
    if name == "a":
        href = node.get("href")
        return f"[{inner}]({href})" if href else inner
    if name == "br":
        return "\n"
    if name == "hr":
        return "\n---\n"
    if name in ("p", "div"):
        return f"\n{inner}\n\n"
    return inner


def _html_children(node: Tag) -> str:
    return "".join(_html_node_to_markdown(child) for child in node.children)


def html_to_markdown(html: str) -> str:
    """Convert an HTML fragment into the Markdown dialect handled below."""
    soup = BeautifulSoup(html, "html.parser")
    return _html_children(soup)


# ---------------------------------------------------------------------------
# Markdown → WhatsApp
# ---------------------------------------------------------------------------


def _markdown_to_whatsapp(markdown: str) -> str:
    text, code = _protect_code(markdown)

    text = _HEADER_RE.sub("", text)
    text = _RULE_RE.sub("", text)
    text = _LIST_RE.sub(f"{BULLET} ", text)
    text = _QUOTE_RE.sub("> ", text)
    text = _LINK_RE.sub(r"\1", text)

    text = _STRONG_STAR_RE.sub(rf"{_BOLD_MARK}\1{_BOLD_MARK}", text)
    text = _STRONG_UNDERSCORE_RE.sub(rf"{_BOLD_MARK}\1{_BOLD_MARK}", text)
    text = _EM_STAR_RE.sub(r"_\1_", text)
    text = _STRIKE_RE.sub(r"~\1~", text)
    text = text.replace(_BOLD_MARK, "*")

    lines = [line.strip() for line in text.split("\n")]
    text = "\n".join(line for line in lines if line)

    return _restore_code(text, code).strip()


def _strip_markup(text: str) -> str:
    """Last-resort plain text used when formatting itself fails."""
    text = re.sub(r"```([\s\S]*?)```", r"\1", text)
    text = re.sub(r"\*\*(.*?)\*\*", r"\1", text)
    text = re.sub(r"__(.*?)__", r"\1", text)
    text = re.sub(r"\*(.*?)\*", r"\1", text)
    text = re.sub(r"~~(.*?)~~", r"\1", text)
    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = re.sub(r"^#{1,6}\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"^[-*+]\s+", f"{BULLET} ", text, flags=re.MULTILINE)
    text = re.sub(r"^\d+\.\s+", f"{BULLET} ", text, flags=re.MULTILINE)
    text = _LINK_RE.sub(r"\1", text)
    text = re.sub(r"^>\s+", "", text, flags=re.MULTILINE)
    text = _HTML_TAG_RE.sub("", text)
    return text.strip()


def format_for_whatsapp(text: str) -> str:
    """Convert a Markdown (or HTML) answer into WhatsApp-friendly text.

    Never raises: if conversion fails the markup is stripped instead.

    Args:
        text: Model output with standard Markdown and/or HTML.

    Returns:
        Text using WhatsApp's ``*bold*`` / ``_italic_`` / ``~strike~`` dialect.
    """
    if not text:
        return ""

    try:
        body, code = _protect_code(text, _RAW_CODE_MARK)
        if _HTML_TAG_RE.search(body):
            body = html_to_markdown(body)
        return _restore_code(_markdown_to_whatsapp(body), code, _RAW_CODE_MARK)
    except Exception:
        logger.exception("WhatsApp formatting failed, falling back to plain text")
        try:
            return _strip_markup(text)
        except Exception:
            logger.exception("Plain-text fallback failed")
            return text.strip()


def format_media_analysis(analysis: str) -> str:
    if not analysis or not analysis.strip():
        return MEDIA_ANALYSIS_EMPTY
    return f"{MEDIA_ANALYSIS_PREFIX}\n\n{format_for_whatsapp(analysis)}"


def format_error(message: str) -> str:
    return f"{ERROR_PREFIX}\n\n{format_for_whatsapp(message)}"


def format_welcome(message: str) -> str:
    return f"{WELCOME_PREFIX}\n\n{format_for_whatsapp(message)}"
