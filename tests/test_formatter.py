"""Tests for WhatsApp response formatting."""

from unittest.mock import patch

from wulang.whatsapp.formatter import (
    MEDIA_ANALYSIS_EMPTY,
    format_error,
    format_for_whatsapp,
    format_media_analysis,
    format_welcome,
    html_to_markdown,
)


class TestMarkdown:
    def test_emphasis_dialect(self):
        assert format_for_whatsapp("**bold** and _em_ and ~strike~") == (
            "*bold* and _em_ and ~strike~"
        )

    def test_header_stripped_and_blank_lines_collapsed(self):
        assert format_for_whatsapp("# Title\n\nBody") == "Title\nBody"

    def test_star_italic_becomes_underscore(self):
        assert format_for_whatsapp("an *important* point") == "an _important_ point"

    def test_underscore_bold(self):
        assert format_for_whatsapp("__strong__") == "*strong*"

    def test_double_tilde_strike(self):
        assert format_for_whatsapp("~~gone~~") == "~gone~"

    def test_link_reduced_to_label(self):
        assert format_for_whatsapp("See [the guide](https://example.com/guide) now") == (
            "See the guide now"
        )

    def test_list_markers_become_bullets(self):
        text = "- one\n* two\n1. three\n2) four"
        assert format_for_whatsapp(text) == "• one\n• two\n• three\n• four"

    def test_quote_prefix(self):
        assert format_for_whatsapp(">quoted line") == "> quoted line"

    def test_horizontal_rule_dropped(self):
        assert format_for_whatsapp("before\n\n---\n\nafter") == "before\nafter"

    def test_lines_trimmed(self):
        assert format_for_whatsapp("   padded   \n  text ") == "padded\ntext"

    def test_multiplication_untouched(self):
        assert format_for_whatsapp("2 * 3 * 4") == "2 * 3 * 4"

    def test_empty_input(self):
        assert format_for_whatsapp("") == ""


class TestCode:
    def test_inline_code_preserved(self):
        assert format_for_whatsapp("Use `**raw**` here") == "Use `**raw**` here"

    def test_fenced_block_preserved_verbatim(self):
        text = "Example:\n\n```python\n    x = **1**\n\n    y = 2\n```"
        assert format_for_whatsapp(text) == "Example:\n```python\n    x = **1**\n\n    y = 2\n```"

    def test_angle_brackets_in_inline_code(self):
        text = "Gunakan tipe `List<String>` di sini."
        assert format_for_whatsapp(text) == text

    def test_html_inside_fenced_block_left_alone(self):
        text = "Contoh:\n```\n<b>tebal</b>\n```"
        assert format_for_whatsapp(text) == text

    def test_code_survives_html_conversion(self):
        html = "<p>Pakai <b>ini</b>: `Map<K, V>`</p>"
        assert format_for_whatsapp(html) == "Pakai *ini*: `Map<K, V>`"


class TestHtml:
    def test_html_to_markdown(self):
        md = html_to_markdown("<p>Hi <b>there</b></p>")
        assert "**there**" in md

    def test_paragraph_and_list(self):
        html = "<p>Hello <strong>world</strong></p><ul><li>a</li><li>b</li></ul>"
        assert format_for_whatsapp(html) == "Hello *world*\n• a\n• b"

    def test_heading_and_emphasis(self):
        html = "<h2>Title</h2><p>Body with <em>emphasis</em></p>"
        assert format_for_whatsapp(html) == "Title\nBody with _emphasis_"

    def test_ordered_list_and_link(self):
        html = '<ol><li>first</li><li><a href="https://x.y">second</a></li></ol>'
        assert format_for_whatsapp(html) == "• first\n• second"

    def test_strike_and_code(self):
        html = "<p><del>old</del> <code>x</code></p>"
        assert format_for_whatsapp(html) == "~old~ `x`"

    def test_placeholder_brackets_are_not_html(self):
        text = "Beri nama file <nama>_<nim>.pdf lalu kirim."
        assert format_for_whatsapp(text) == text


class TestFallback:
    def test_strips_markup_when_conversion_fails(self):
        with patch(
            "wulang.whatsapp.formatter._markdown_to_whatsapp",
            side_effect=RuntimeError("boom"),
        ):
            assert format_for_whatsapp("# Head\n**bold** text") == "Head\nbold text"


class TestWrappers:
    def test_media_analysis(self):
        assert format_media_analysis("**Ringkasan**") == "📄 *Analisis Media*\n\n*Ringkasan*"

    def test_media_analysis_empty(self):
        assert format_media_analysis("") == MEDIA_ANALYSIS_EMPTY
        assert format_media_analysis("   ") == MEDIA_ANALYSIS_EMPTY

    def test_error(self):
        assert format_error("Coba lagi") == "❌ *Error*\n\nCoba lagi"

    def test_welcome(self):
        assert format_welcome("Halo!") == "👋 *Selamat Datang*\n\nHalo!"
