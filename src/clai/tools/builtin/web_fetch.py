"""Web fetch tool: download a page and return its readable text.

The fetcher refuses anything that is not plain http(s) and anything
whose host resolves to a loopback, private, link-local, reserved,
multicast or unspecified address. Redirects are followed by hand so
every hop goes through the same check before a request is sent, and
each request connects to the address that passed the check rather than
resolving the host a second time.
"""

from __future__ import annotations

import html
import ipaddress
import re
import socket
from collections.abc import Callable
from urllib.parse import urljoin, urlsplit

import httpx

from clai.core.models import ToolResult
from clai.sanitize import sanitize_url
from clai.tools.definitions import RegisteredTool, ToolContext, ToolDefinition

FETCH_TIMEOUT_SECONDS = 10.0
MAX_RESPONSE_BYTES = 500_000
MAX_REDIRECTS = 5
MAX_TEXT_CHARS = 8000
USER_AGENT = "clai/1.0"

Resolver = Callable[[str], list[str]]

_SCRIPT_STYLE = re.compile(r"<(script|style)\b.*?(?:</\1\s*>|\Z)", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


class URLBlocked(Exception):
    """Raised internally when a URL fails the pre-flight check."""


def _default_resolver(host: str) -> list[str]:
    infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    return [str(info[4][0]) for info in infos]


def is_blocked_address(address: str) -> bool:
    """True for addresses a fetch must never reach."""
    ip = ipaddress.ip_address(address.split("%", 1)[0])
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_loopback
        or ip.is_private
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def html_to_text(body: str) -> str:
    """Drop script/style blocks and tags, unescape entities, collapse whitespace."""
    text = _SCRIPT_STYLE.sub(" ", body)
    text = _TAG.sub(" ", text)
    text = html.unescape(text)
    return _WHITESPACE.sub(" ", text).strip()


class WebFetcher:
    """Synchronous, SSRF-guarded page fetcher built on httpx."""

    def __init__(
        self,
        transport: httpx.BaseTransport | None = None,
        resolver: Resolver | None = None,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        max_bytes: int = MAX_RESPONSE_BYTES,
    ):
        self._client = httpx.Client(
            transport=transport,
            timeout=timeout,
            follow_redirects=False,
            headers={"User-Agent": USER_AGENT},
        )
        self._resolver = resolver or _default_resolver
        self._max_bytes = max_bytes

    def close(self) -> None:
        self._client.close()

    def check_url(self, url: str) -> str:
        """Validate a URL and return its normalized form.

        Raises URLBlocked with a user-facing reason.
        """
        return self.resolve_url(url)[0]

    def resolve_url(self, url: str) -> tuple[str, str]:
        """Validate a URL; return its normalized form and the vetted address to connect to."""
        checked = sanitize_url(url)
        if not checked.valid:
            if checked.error == "Only HTTP and HTTPS protocols are allowed":
                raise URLBlocked("Only HTTP/HTTPS URLs are supported")
            raise URLBlocked("Invalid URL")

        host = urlsplit(checked.sanitized).hostname or ""
        try:
            addresses = [str(ipaddress.ip_address(host))]
        except ValueError:
            try:
                addresses = self._resolver(host)
            except (OSError, UnicodeError):
                raise URLBlocked(f"Could not resolve host: {host}") from None
        if not addresses:
            raise URLBlocked(f"Could not resolve host: {host}")

        for address in addresses:
            try:
                blocked = is_blocked_address(address)
            except ValueError:
                blocked = True
            if blocked:
                raise URLBlocked(f"Access denied: {host} resolves to a non-public address")
        return checked.sanitized, addresses[0]

    def _pinned_request(self, url: str, address: str) -> httpx.Request:
        """GET ``url`` over a connection to ``address``, keeping the original Host and SNI."""
        target = httpx.URL(url)
        pinned_host = f"[{address}]" if ":" in address else address
        extensions = {"sni_hostname": target.host} if target.scheme == "https" else {}
        return self._client.build_request(
            "GET",
            target.copy_with(host=pinned_host),
            headers={"Host": target.netloc.decode("ascii")},
            extensions=extensions,
        )

    def _read_capped(self, response: httpx.Response) -> bytes:
        chunks: list[bytes] = []
        total = 0
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            total += len(chunk)
            if total >= self._max_bytes:
                break
        return b"".join(chunks)[: self._max_bytes]

    def fetch(self, url: str) -> ToolResult:
        try:
            current, address = self.resolve_url(url)
        except URLBlocked as e:
            return ToolResult(output=str(e), is_error=True)
        host = urlsplit(current).hostname or ""

        try:
            for _ in range(MAX_REDIRECTS + 1):
                response = self._client.send(self._pinned_request(current, address), stream=True)
                try:
                    if response.is_redirect:
                        location = response.headers.get("location", "")
                        next_url = urljoin(current, location)
                        try:
                            current, address = self.resolve_url(next_url)
                        except URLBlocked as e:
                            return ToolResult(output=f"Redirect blocked: {e}", is_error=True)
                        host = urlsplit(current).hostname or ""
                        continue

                    if response.status_code >= 400:
                        return ToolResult(
                            output=f"Failed to fetch URL: HTTP {response.status_code}",
                            is_error=True,
                        )
                    body = self._read_capped(response)
                    encoding = response.charset_encoding or "utf-8"
                    break
                finally:
                    response.close()
            else:
                return ToolResult(output=f"Failed to fetch URL: more than {MAX_REDIRECTS} redirects", is_error=True)
        except httpx.HTTPError as e:
            return ToolResult(output=f"Failed to fetch URL: {e}", is_error=True)

        try:
            decoded = body.decode(encoding, errors="replace")
        except LookupError:
            decoded = body.decode("utf-8", errors="replace")

        text = html_to_text(decoded)
        if not text:
            return ToolResult(output="Page returned no readable content.")
        if len(text) > MAX_TEXT_CHARS:
            text = text[:MAX_TEXT_CHARS] + "\n\n[Truncated]"
        return ToolResult(output=f"Content from {host}:\n\n{text}")


def _web_fetch(ctx: ToolContext, url: str) -> ToolResult:
    if ctx.fetcher is None:
        return ToolResult(output="Web fetching is not available", is_error=True)
    return ctx.fetcher.fetch(url)


WEB_FETCH_TOOL = RegisteredTool(
    definition=ToolDefinition(
        name="web_fetch",
        description=(
            "Fetch the text content of a webpage. Returns the page text (HTML stripped). "
            "Use this when the user asks about a URL or you need to look something up online."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The URL to fetch",
                },
            },
            "required": ["url"],
        },
    ),
    handler=_web_fetch,
)
