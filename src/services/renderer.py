"""Rendering of untrusted program output into a bounded chat message.

Output from a sandbox may contain anything: ANSI escapes, control bytes,
non-ASCII text, backticks that would close the code fence early, or
megabytes of text. ``render`` reduces it to printable ASCII inside a single
fenced code block that fits in one chat message.
"""

from typing import Callable, Union

FENCE = "```"
TRUNCATION_NOTICE = "Full output too long to display."
BACKTICK = 0x60

DEFAULT_LANGUAGE = "cpp"
DEFAULT_MAX_CHARS = 800
DEFAULT_MAX_LINES = 30


def is_allowed_byte(by: int) -> bool:
    """Newline, form feed and printable ASCII."""
    return by == 0x0A or by == 0x0C or 0x20 <= by <= 0x7E


def asciiify(
    raw: Union[str, bytes], keep: Callable[[int], bool] = lambda by: True
) -> str:
    """Drop every byte outside the allowed set (and any ``keep`` rejects).

    ``str`` input is filtered on its UTF-8 encoding, so non-ASCII characters
    disappear entirely rather than being replaced.
    """
    if isinstance(raw, str):
        raw = raw.encode("utf-8", errors="ignore")
    return bytes(by for by in raw if is_allowed_byte(by) and keep(by)).decode("ascii")


def render(
    raw: Union[str, bytes, None],
    language: str = DEFAULT_LANGUAGE,
    max_chars: int = DEFAULT_MAX_CHARS,
    max_lines: int = DEFAULT_MAX_LINES,
) -> str:
    """Render raw output as a safe, length-bounded fenced code block.

    Returns an empty string when nothing printable remains; the caller
    decides what to show instead.

    The length cap is applied first; the line cap is then applied to the
    result, so both truncations can compound.
    """
    if not raw:
        return ""

    output = asciiify(raw, lambda by: by != BACKTICK).strip()
    if not output:
        return ""

    output = f"{FENCE}{language}\n{output}\n{FENCE}"

    if len(output) > max_chars:
        output = f"{TRUNCATION_NOTICE}\n{output[:max_chars].strip()}\n{FENCE}"

    cut = _line_cut_index(output, max_lines)
    if cut < len(output):
        output = f"{output[:cut].strip()}\n{FENCE}"

    return output


def _line_cut_index(text: str, max_lines: int) -> int:
    """Index just past the ``max_lines``-th newline, or len(text)."""
    newlines = 0
    for i, ch in enumerate(text):
        if ch == "\n" or ch == "\r":
            newlines += 1
            if newlines >= max_lines:
                return i + 1
    return len(text)
