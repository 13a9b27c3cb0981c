"""
clai Sanitization Helpers

Terminal-safe text handling for anything that crosses the terminal:
user input is stripped of escape sequences, model output is stripped of
the sequences that can retitle the terminal or smuggle commands, and
error messages are scrubbed of the absolute working directory.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

_CSI = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")
_OTHER_ESCAPE = re.compile(r"\x1b[^\[]")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_OSC_BEL = re.compile(r"\x1b\][^\x07]*\x07")
_OSC_ST = re.compile(r"\x1b\][^\x1b]*\x1b\\")
_DCS_PM_APC = re.compile(r"\x1b[P^_]")


def sanitize_input(text: str) -> str:
    """Remove ANSI escapes and C0 control characters (newline, tab and CR survive)."""
    if not text:
        return text
    text = _CSI.sub("", text)
    text = _OTHER_ESCAPE.sub("", text)
    return _CONTROL_CHARS.sub("", text)


def sanitize_output(text: str) -> str:
    """Remove OSC, DCS, PM and APC sequences but keep ordinary formatting."""
    if not text:
        return text
    text = _OSC_BEL.sub("", text)
    text = _OSC_ST.sub("", text)
    return _DCS_PM_APC.sub("", text)


def sanitize_error_path(message: str, working_directory: str) -> str:
    """Replace every occurrence of the working directory with '.'."""
    if not working_directory or working_directory == "/":
        return message
    return message.replace(working_directory, ".")


@dataclass(frozen=True)
class URLCheck:
    valid: bool
    sanitized: str = ""
    error: str | None = None


def sanitize_url(url: str) -> URLCheck:
    """Accept only well-formed http(s) URLs and return them normalized."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return URLCheck(valid=False, error="Invalid URL format")

    if parts.scheme.lower() not in ("http", "https"):
        if not parts.scheme:
            return URLCheck(valid=False, error="Invalid URL format")
        return URLCheck(valid=False, error="Only HTTP and HTTPS protocols are allowed")

    try:
        hostname = parts.hostname
        _ = parts.port
    except ValueError:
        return URLCheck(valid=False, error="Invalid URL format")
    if not hostname:
        return URLCheck(valid=False, error="Invalid URL format")

    path = parts.path or "/"
    normalized = urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, parts.fragment))
    return URLCheck(valid=True, sanitized=normalized)
