from __future__ import annotations

from mailrender.services.render.plain_text import to_plain_text


def test_strips_tags_and_collapses_whitespace() -> None:
    html = "<div>\n  <b>Hello</b>,\t<i>world</i>!\n</div>"

    assert to_plain_text(html) == "Hello, world!"


def test_block_boundaries_separate_words() -> None:
    assert to_plain_text("<p>Hello</p><p>World</p>") == "Hello World"
    assert to_plain_text("one<br>two<BR/>three") == "one two three"
    assert to_plain_text("<table><tr><td>a</td><td>b</td></tr></table>") == "a b"


def test_inline_tags_do_not_split_words() -> None:
    assert to_plain_text("<b>Bold</b><i>Italic</i>") == "BoldItalic"


def test_entities_are_decoded() -> None:
    text = to_plain_text("Fish &amp; Chips&nbsp;&#8212; &quot;fresh&quot;")

    assert text == 'Fish & Chips \u2014 "fresh"'


def test_idempotent_on_plain_text() -> None:
    once = to_plain_text("<p>Some   text</p>\n<p>more</p>")

    assert to_plain_text(once) == once
    assert to_plain_text("already plain") == "already plain"


def test_empty_input() -> None:
    assert to_plain_text("") == ""
    assert to_plain_text(None) == ""
    assert to_plain_text("<br><p></p>") == ""


def test_escaped_brackets_in_text_are_kept() -> None:
    text = to_plain_text("<p>x &lt; 5 and y &gt; 3</p>")

    assert text == "x < 5 and y > 3"
    assert to_plain_text(text) == text
