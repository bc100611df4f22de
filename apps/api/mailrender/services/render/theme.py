from __future__ import annotations

from dataclasses import asdict, dataclass
from string import Template

from mailrender.services.render.types import Theme

CONTENT_CLASS = "message-content"


@dataclass(frozen=True)
class Palette:
    text: str
    background: str
    link: str
    border: str
    muted: str
    surface: str
    surface_hover: str


LIGHT = Palette(
    text="#3c4043",
    background="#ffffff",
    link="#1a73e8",
    border="#dadce0",
    muted="#5f6368",
    surface="#f8f9fa",
    surface_hover="#f1f3f4",
)

DARK = Palette(
    text="#e8eaed",
    background="#202124",
    link="#8ab4f8",
    border="#5f6368",
    muted="#9aa0a6",
    surface="#3c4043",
    surface_hover="#48494a",
)

_STYLESHEET = Template(
    """<style>
* { box-sizing: border-box; }
body {
  font-family: 'Google Sans', Roboto, -apple-system, BlinkMacSystemFont, 'Segoe UI', arial, sans-serif;
  font-size: 14px;
  line-height: 1.4;
  color: $text;
  background-color: $background;
  margin: 0;
  padding: 0;
  overflow-wrap: break-word;
}
p { margin: 0 0 1em 0; }
p, div, li, td, th { font-size: 14px; line-height: 1.4; color: $text; }
span { font-size: inherit; line-height: inherit; color: inherit; }
a { color: $link; text-decoration: none; cursor: pointer; }
a:hover { text-decoration: underline; }
h1 { font-size: 24px; font-weight: 400; line-height: 1.3; margin: 0 0 16px 0; color: $text; }
h2 { font-size: 20px; font-weight: 400; line-height: 1.3; margin: 0 0 14px 0; color: $text; }
h3 { font-size: 16px; font-weight: 500; line-height: 1.3; margin: 0 0 12px 0; color: $text; }
h4, h5, h6 { font-size: 14px; font-weight: 500; line-height: 1.3; margin: 0 0 10px 0; color: $text; }
strong, b { font-weight: 500; }
ul, ol { margin: 0 0 1em 0; padding-left: 24px; }
li { margin-bottom: 0.25em; }
table { border-collapse: collapse; width: 100%; max-width: 100%; margin: 16px 0; }
td, th { padding: 8px 12px; border: 1px solid $border; text-align: left; vertical-align: top; }
th { background-color: $surface; font-weight: 500; }
img { max-width: 100%; height: auto; display: block; margin: 8px 0; border-radius: 8px; }
blockquote { border-left: 4px solid $border; margin: 16px 0; padding: 0 0 0 16px; color: $muted; }
details.quoted-text { margin: 16px 0; border: 1px solid $border; border-radius: 8px; overflow: hidden; }
details.quoted-text > summary {
  cursor: pointer;
  padding: 12px 16px;
  background-color: $surface;
  font-size: 13px;
  font-weight: 500;
  color: $muted;
  list-style: none;
  user-select: none;
}
details.quoted-text > summary:hover { background-color: $surface_hover; }
details.quoted-text > summary::-webkit-details-marker { display: none; }
details.quoted-text[open] > summary { border-bottom: 1px solid $border; }
details.quoted-text > div { padding: 16px; background-color: $background; }
pre {
  background-color: $surface;
  border: 1px solid $border;
  border-radius: 8px;
  padding: 16px;
  overflow-x: auto;
  font-family: 'Roboto Mono', 'Courier New', monospace;
  font-size: 13px;
  margin: 16px 0;
}
code {
  background-color: $surface;
  border-radius: 4px;
  padding: 2px 6px;
  font-family: 'Roboto Mono', 'Courier New', monospace;
  font-size: 13px;
}
hr { border: none; border-top: 1px solid $border; margin: 24px 0; }
.blocked-image {
  border: 1px dashed $border;
  border-radius: 8px;
  padding: 16px;
  margin: 8px 0;
  background-color: $surface;
  text-align: center;
  font-size: 13px;
  color: $muted;
}
.blocked-image-icon { font-size: 24px; margin-bottom: 8px; display: block; }
.blocked-image-text { font-weight: 500; margin-bottom: 4px; }
.blocked-image-source { font-size: 12px; opacity: 0.8; }
.$content_class { padding: 20px 0; }
br + br { display: none; }
@media (max-width: 480px) {
  body { font-size: 13px; }
  h1 { font-size: 20px; }
  h2 { font-size: 18px; }
  table { font-size: 12px; }
  td, th { padding: 6px 8px; }
  pre, code { font-size: 12px; }
}
</style>"""
)


def palette_for(theme: Theme) -> Palette:
    return DARK if theme == Theme.dark else LIGHT


def theme_stylesheet(theme: Theme) -> str:
    return _STYLESHEET.substitute(asdict(palette_for(theme)), content_class=CONTENT_CLASS)


def apply_theme(fragment: str, theme: Theme) -> str:
    return f'{theme_stylesheet(theme)}<div class="{CONTENT_CLASS}">{fragment}</div>'
