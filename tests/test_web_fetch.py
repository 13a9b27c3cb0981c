"""Tests for the web_fetch tool and its SSRF guard.

All traffic goes through httpx.MockTransport; a request reaching a
transport that should never be hit fails the test.
"""

import httpx
import pytest

from clai.tools.builtin.web_fetch import WebFetcher, html_to_text, is_blocked_address

PUBLIC_IP = "93.184.216.34"


def make_fetcher(handler, resolver=None):
    return WebFetcher(
        transport=httpx.MockTransport(handler),
        resolver=resolver or (lambda host: [PUBLIC_IP]),
    )


class Recorder:
    """MockTransport handler that serves canned responses by path."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []
        self.connected_to = []
        self.sni = []

    def __call__(self, request):
        self.requests.append(f"{request.url.scheme}://{request.headers['host']}{request.url.path}")
        self.connected_to.append(request.url.host)
        self.sni.append(request.extensions.get("sni_hostname"))
        return self.routes[request.url.path]()


# ─── Address classification ────────────────────────────────


class TestIsBlockedAddress:
    @pytest.mark.parametrize(
        "address",
        ["127.0.0.1", "10.0.0.5", "172.16.3.4", "192.168.1.1", "169.254.169.254",
         "0.0.0.0", "224.0.0.1", "::1", "fe80::1", "fc00::1", "::ffff:127.0.0.1"],
    )
    def test_non_public_blocked(self, address):
        assert is_blocked_address(address)

    @pytest.mark.parametrize("address", ["8.8.8.8", PUBLIC_IP, "2606:4700:4700::1111"])
    def test_public_allowed(self, address):
        assert not is_blocked_address(address)


class TestHtmlToText:
    def test_strips_markup(self):
        body = (
            "<html><head><style>p { color: red }</style><script>var x = 1;</script></head>"
            "<body><h1>Title</h1>\n<p>Hello &amp; world</p></body></html>"
        )
        assert html_to_text(body) == "Title Hello & world"

    def test_unterminated_script_dropped(self):
        assert html_to_text("<p>kept</p><script>alert(1)") == "kept"


# ─── Pre-flight checks ─────────────────────────────────────


class TestPreflight:
    def test_loopback_denied_without_request(self, offline_fetcher):
        result = offline_fetcher.fetch("http://127.0.0.1/secret")
        assert result.is_error
        assert result.output == "Access denied: 127.0.0.1 resolves to a non-public address"

    def test_hostname_resolving_to_private_denied(self):
        fetcher = make_fetcher(lambda r: pytest.fail("request sent"), resolver=lambda host: ["192.168.1.10"])
        result = fetcher.fetch("https://intranet.example/")
        assert result.is_error
        assert result.output == "Access denied: intranet.example resolves to a non-public address"

    def test_any_private_answer_denies(self):
        fetcher = make_fetcher(lambda r: pytest.fail("request sent"), resolver=lambda host: [PUBLIC_IP, "10.1.1.1"])
        assert fetcher.fetch("https://mixed.example/").is_error

    def test_cloud_metadata_denied(self, offline_fetcher):
        result = offline_fetcher.fetch("http://169.254.169.254/latest/meta-data/")
        assert result.is_error

    @pytest.mark.parametrize("url", ["ftp://example.com/file", "file:///etc/passwd", "javascript:alert(1)"])
    def test_non_http_scheme_rejected(self, offline_fetcher, url):
        result = offline_fetcher.fetch(url)
        assert result.is_error
        assert result.output == "Only HTTP/HTTPS URLs are supported"

    def test_malformed_url_rejected(self, offline_fetcher):
        result = offline_fetcher.fetch("not a url")
        assert result.is_error
        assert result.output == "Invalid URL"

    def test_unresolvable_host(self):
        def resolver(host):
            raise OSError("Name or service not known")

        fetcher = make_fetcher(lambda r: pytest.fail("request sent"), resolver=resolver)
        result = fetcher.fetch("https://nowhere.invalid/")
        assert result.is_error
        assert result.output == "Could not resolve host: nowhere.invalid"


# ─── Fetching ──────────────────────────────────────────────


class TestFetch:
    def test_returns_readable_text(self):
        recorder = Recorder({"/": lambda: httpx.Response(200, html="<h1>Docs</h1><p>Install with pip</p>")})
        result = make_fetcher(recorder).fetch("https://docs.example.com/")
        assert not result.is_error
        assert result.output == "Content from docs.example.com:\n\nDocs Install with pip"

    def test_http_error_status(self):
        recorder = Recorder({"/missing": lambda: httpx.Response(404, text="not found")})
        result = make_fetcher(recorder).fetch("https://example.com/missing")
        assert result.is_error
        assert result.output == "Failed to fetch URL: HTTP 404"

    def test_empty_page(self):
        recorder = Recorder({"/": lambda: httpx.Response(200, html="<script>only()</script>")})
        result = make_fetcher(recorder).fetch("https://example.com/")
        assert not result.is_error
        assert result.output == "Page returned no readable content."

    def test_long_page_truncated(self):
        recorder = Recorder({"/": lambda: httpx.Response(200, text="a" * 9000)})
        result = make_fetcher(recorder).fetch("https://example.com/")
        assert result.output.endswith("a\n\n[Truncated]")
        assert len(result.output) == len("Content from example.com:\n\n") + 8000 + len("\n\n[Truncated]")

    def test_follows_public_redirect(self):
        recorder = Recorder(
            {
                "/old": lambda: httpx.Response(301, headers={"location": "/new"}),
                "/new": lambda: httpx.Response(200, text="moved here"),
            }
        )
        result = make_fetcher(recorder).fetch("https://example.com/old")
        assert result.output == "Content from example.com:\n\nmoved here"
        assert recorder.requests == ["https://example.com/old", "https://example.com/new"]

    def test_redirect_to_private_address_blocked(self):
        recorder = Recorder({"/": lambda: httpx.Response(302, headers={"location": "http://10.0.0.5/admin"})})
        result = make_fetcher(recorder).fetch("https://example.com/")
        assert result.is_error
        assert result.output == "Redirect blocked: Access denied: 10.0.0.5 resolves to a non-public address"
        assert recorder.requests == ["https://example.com/"]

    def test_redirect_loop_capped(self):
        recorder = Recorder({"/loop": lambda: httpx.Response(302, headers={"location": "/loop"})})
        result = make_fetcher(recorder).fetch("https://example.com/loop")
        assert result.is_error
        assert result.output == "Failed to fetch URL: more than 5 redirects"
        assert len(recorder.requests) == 6

    def test_connects_to_checked_address(self):
        lookups = []

        def rebinding_resolver(host):
            lookups.append(host)
            return [PUBLIC_IP] if len(lookups) == 1 else ["127.0.0.1"]

        recorder = Recorder({"/": lambda: httpx.Response(200, text="public")})
        result = make_fetcher(recorder, resolver=rebinding_resolver).fetch("https://docs.example.com/")

        assert result.output == "Content from docs.example.com:\n\npublic"
        assert lookups == ["docs.example.com"]
        assert recorder.connected_to == [PUBLIC_IP]
        assert recorder.requests == ["https://docs.example.com/"]
        assert recorder.sni == ["docs.example.com"]

    def test_plain_http_keeps_port_in_host_header(self):
        recorder = Recorder({"/": lambda: httpx.Response(200, text="ok")})
        make_fetcher(recorder).fetch("http://example.com:8080/")
        assert recorder.requests == ["http://example.com:8080/"]
        assert recorder.sni == [None]

    def test_ipv6_address_pinned(self):
        recorder = Recorder({"/": lambda: httpx.Response(200, text="v6")})
        result = make_fetcher(recorder, resolver=lambda host: ["2606:4700:4700::1111"]).fetch("https://v6.example/")
        assert result.output == "Content from v6.example:\n\nv6"
        assert recorder.connected_to == ["2606:4700:4700::1111"]

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = make_fetcher(handler).fetch("https://example.com/")
        assert result.is_error
        assert result.output == "Failed to fetch URL: connection refused"


class TestWebFetchTool:
    def test_executor_routes_to_fetcher(self, executor):
        result = executor.execute("web_fetch", {"url": "http://127.0.0.1:8080/"})
        assert result.is_error
        assert "non-public address" in result.output

    def test_missing_url(self, executor):
        result = executor.execute("web_fetch", {})
        assert result.output == "Missing or invalid 'url'"
