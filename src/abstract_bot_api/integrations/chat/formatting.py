"""Text conversions between the HTML-ish markup handlers write and what each
platform accepts."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Optional

# Straight and typographic quotes are both accepted around href values.
_QUOTES = "\"'“”‘’"

_TELEGRAM_SIMPLE_TAGS = frozenset(
    {"b", "strong", "i", "em", "u", "s", "strike", "del", "code", "pre"}
)
_ESCAPED_TAG_RE = re.compile(r"&lt;(/)?([a-zA-Z0-9]+)([^&]*?)&gt;")
_HREF_ATTR_RE = re.compile(r"""^href=("[^"]*"|'[^']*')$""", re.IGNORECASE)
_SPOILER_ATTR_RE = re.compile(r"""^class=("tg-spoiler"|'tg-spoiler')$""", re.IGNORECASE)


@dataclass
class _TagToken:
    raw: str
    name: str
    closing: bool
    candidate: bool
    href: Optional[str] = None
    spoiler: bool = False
    restore: bool = False


def _tag_token(match: re.Match[str]) -> _TagToken:
    closing = bool(match.group(1))
    name = match.group(2).lower()
    attrs = (match.group(3) or "").strip()
    token = _TagToken(raw=match.group(0), name=name, closing=closing, candidate=False)
    if closing:
        token.candidate = not attrs and (
            name in _TELEGRAM_SIMPLE_TAGS or name in ("a", "span")
        )
    elif name in _TELEGRAM_SIMPLE_TAGS:
        token.candidate = not attrs
    elif name == "a":
        href = _HREF_ATTR_RE.match(attrs)
        if href:
            token.candidate = True
            token.href = href.group(1)
    elif name == "span" and _SPOILER_ATTR_RE.match(attrs):
        token.candidate = True
        token.spoiler = True
    return token


def _render_tag(token: _TagToken) -> str:
    if not token.restore:
        return token.raw
    if token.closing:
        return f"</{token.name}>"
    if token.href is not None:
        return f"<a href={token.href}>"
    if token.spoiler:
        return '<span class="tg-spoiler">'
    return f"<{token.name}>"


def sanitize_telegram_html(text: str) -> str:
    """Escape everything except balanced pairs of tags Telegram's HTML mode accepts.

    Keeps `b strong i em u s strike del code pre`, `<a href="...">` and
    `<span class="tg-spoiler">`; unbalanced or unknown tags stay escaped so
    `parse_mode=HTML` never rejects the message.
    """
    if not text:
        return text
    escaped = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")

    parts: list[object] = []
    last = 0
    for match in _ESCAPED_TAG_RE.finditer(escaped):
        if match.start() > last:
            parts.append(escaped[last : match.start()])
        parts.append(_tag_token(match))
        last = match.end()
    if last < len(escaped):
        parts.append(escaped[last:])

    stack: list[_TagToken] = []
    for part in parts:
        if not isinstance(part, _TagToken) or not part.candidate:
            continue
        if not part.closing:
            stack.append(part)
        elif stack and stack[-1].name == part.name:
            opening = stack.pop()
            opening.restore = True
            part.restore = True

    return "".join(
        _render_tag(part) if isinstance(part, _TagToken) else str(part)
        for part in parts
    )


_VIDEO_BLOCK_RE = re.compile(r"<video\b([^>]*)>(.*?)</video\s*>", re.IGNORECASE | re.DOTALL)
_VIDEO_OPEN_RE = re.compile(r"<video\b([^>]*)>", re.IGNORECASE)
_SOURCE_RE = re.compile(r"<source\b([^>]*)>", re.IGNORECASE)
_SRC_ATTR_RE = re.compile(r"""\bsrc\s*=\s*(?:"([^"]*)"|'([^']*)')""", re.IGNORECASE)


@dataclass(frozen=True)
class VideoTag:
    video_url: str
    remaining_text: str


def _src_of(attrs: str) -> Optional[str]:
    match = _SRC_ATTR_RE.search(attrs)
    if not match:
        return None
    return match.group(1) if match.group(1) is not None else match.group(2)


def extract_video_tag(text: str) -> Optional[VideoTag]:
    """Pull the first `<video>` out of `text`.

    The URL comes from the tag's own `src` or from a `<source src>` child.
    Text before and after the tag is kept, joined by a newline.
    """
    block = _VIDEO_BLOCK_RE.search(text)
    if block:
        url = _src_of(block.group(1))
        if url is None:
            source = _SOURCE_RE.search(block.group(2))
            url = _src_of(source.group(1)) if source else None
        span = block.span()
    else:
        opening = _VIDEO_OPEN_RE.search(text)
        if not opening:
            return None
        url = _src_of(opening.group(1))
        span = opening.span()
    if not url:
        return None
    pieces = [text[: span[0]].strip(), text[span[1] :].strip()]
    return VideoTag(
        video_url=url, remaining_text="\n".join(piece for piece in pieces if piece)
    )


def _list_items(content: str) -> list[str]:
    items = re.findall(r"<li>(.*?)</li>", content, flags=re.IGNORECASE | re.DOTALL)
    return [item.strip() for item in items]


def _bullets(match: re.Match[str]) -> str:
    return "\n".join(f"* {item}" for item in _list_items(match.group(1)))


def _numbered(match: re.Match[str]) -> str:
    return "\n".join(
        f"{index}. {item}" for index, item in enumerate(_list_items(match.group(1)), 1)
    )


def _mailto(match: re.Match[str]) -> str:
    email, label = match.group(1), match.group(2)
    return email if label.lower() == email.lower() else f"{label} - {email}"


def _web_link(match: re.Match[str]) -> str:
    target, label = match.group(1), match.group(2)
    if label in (target, f"http://{target}", f"https://{target}"):
        return target
    return f"{label} - {target}"


_MAILTO_RE = re.compile(
    rf"<a\s+href=[{_QUOTES}]mailto:([^{_QUOTES}?]+)(?:\?[^{_QUOTES}]*)?[{_QUOTES}]>(.*?)</a>",
    re.IGNORECASE,
)
_WEB_LINK_RE = re.compile(
    rf"<a\s+href=[{_QUOTES}]https?://([^{_QUOTES}]+)[{_QUOTES}]>(.*?)</a>",
    re.IGNORECASE,
)


def convert_html_to_facebook_format(message: str) -> str:
    """Render handler HTML as Messenger plain-text markup (`*bold*`, `_under_`)."""
    out = re.sub(r"<br\s*/?>", "\n", message, flags=re.IGNORECASE)
    out = re.sub(r"<b>(.*?)</b>", r"*\1*", out, flags=re.IGNORECASE)
    out = re.sub(r"<h[1-6]>(.*?)</h[1-6]>", r"*\1*", out, flags=re.IGNORECASE)
    out = re.sub(r"<u>(.*?)</u>", r"_\1_", out, flags=re.IGNORECASE)
    out = re.sub(r"</(div|p)>", "\n", out, flags=re.IGNORECASE)
    out = re.sub(r"<(div|p)[^>]*>", "", out, flags=re.IGNORECASE)
    out = re.sub(r"<span[^>]*>(.*?)</span>", r"\1", out, flags=re.IGNORECASE)
    out = re.sub(r"<ul>(.*?)</ul>", _bullets, out, flags=re.IGNORECASE | re.DOTALL)
    out = re.sub(r"<ol>(.*?)</ol>", _numbered, out, flags=re.IGNORECASE | re.DOTALL)
    out = _MAILTO_RE.sub(_mailto, out)
    out = _WEB_LINK_RE.sub(_web_link, out)
    return out.strip()


def convert_to_whatsapp_format(message: str) -> str:
    """Like the Messenger conversion, plus WhatsApp's `_italic_` and `~strike~`."""
    out = re.sub(r"<(i|em)>(.*?)</\1>", r"_\2_", message, flags=re.IGNORECASE)
    out = re.sub(r"<(s|strike|del)>(.*?)</\1>", r"~\2~", out, flags=re.IGNORECASE)
    out = re.sub(r"<strong>(.*?)</strong>", r"<b>\1</b>", out, flags=re.IGNORECASE)
    return convert_html_to_facebook_format(out)


_ANCHOR_RE = re.compile(
    r"""<a\s[^>]*?href\s*=\s*["']([^"']*)["'][^>]*>(.*?)</a>""",
    re.IGNORECASE | re.DOTALL,
)
_BLOCK_END_RE = re.compile(r"</(p|div|h[1-6]|li|tr|ul|ol)\s*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")


def _anchor_text(match: re.Match[str]) -> str:
    href, label = match.group(1), _TAG_RE.sub("", match.group(2)).strip()
    bare = re.sub(r"^(mailto:|https?://)", "", href, flags=re.IGNORECASE)
    if not label or label in (href, bare):
        return bare if href.lower().startswith("mailto:") else href
    return f"{label} [{href}]"


def html_to_text(markup: str) -> str:
    """Plain-text alternative for an HTML email body.

    Link targets are shown in brackets unless the link text already is the target.
    """
    out = _ANCHOR_RE.sub(_anchor_text, markup)
    out = re.sub(r"<br\s*/?>", "\n", out, flags=re.IGNORECASE)
    out = re.sub(r"<li[^>]*>", "* ", out, flags=re.IGNORECASE)
    out = _BLOCK_END_RE.sub("\n", out)
    out = _TAG_RE.sub("", out)
    out = html.unescape(out)
    out = re.sub(r"[ \t]+\n", "\n", out)
    out = re.sub(r"\n{3,}", "\n\n", out)
    return out.strip()


def chunk_text(text: str, *, max_len: int) -> list[str]:
    """Split on newlines, then spaces, then hard cuts so each part fits `max_len`."""
    if max_len <= 0:
        raise ValueError("max_len must be positive")
    if not text.strip():
        return []
    parts: list[str] = []
    remaining = text
    while len(remaining) > max_len:
        cut = remaining.rfind("\n", 0, max_len + 1)
        if cut <= 0:
            cut = remaining.rfind(" ", 0, max_len + 1)
        if cut <= 0:
            cut = max_len
        parts.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        parts.append(remaining)
    return parts
