"""Conversion of Azure DevOps rich-text fields to plain text."""

import re

_STRUCTURE: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"</p>", re.IGNORECASE), "\n\n"),
    (re.compile(r"</div>", re.IGNORECASE), "\n"),
    (re.compile(r"</li>", re.IGNORECASE), "\n"),
    (re.compile(r"<li>", re.IGNORECASE), "- "),
)

# &amp; goes last so "&amp;lt;" decodes to "&lt;" rather than "<"
_ENTITIES: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"&nbsp;", re.IGNORECASE), " "),
    (re.compile(r"&lt;", re.IGNORECASE), "<"),
    (re.compile(r"&gt;", re.IGNORECASE), ">"),
    (re.compile(r"&quot;", re.IGNORECASE), '"'),
    (re.compile(r"&amp;", re.IGNORECASE), "&"),
)

_TAG = re.compile(r"<[^>]+>")
_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")


def html_to_text(html: str | None) -> str:
    """
    Reduce HTML to readable plain text.

    Line-breaking tags become newlines, list items become ``- `` bullets,
    all other tags are dropped, common entities are decoded and runs of
    blank lines collapse to one. Entities are decoded after tags are
    removed, so escaped angle brackets survive as text.
    """
    if not html:
        return ""

    text = html
    for pattern, replacement in _STRUCTURE:
        text = pattern.sub(replacement, text)

    text = _TAG.sub("", text)

    for pattern, replacement in _ENTITIES:
        text = pattern.sub(replacement, text)

    return _EXTRA_BLANK_LINES.sub("\n\n", text).strip()
