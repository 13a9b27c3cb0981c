"""Tests for terminal and URL sanitization."""

from clai.sanitize import sanitize_error_path, sanitize_input, sanitize_output, sanitize_url


class TestSanitizeInput:
    def test_strips_ansi_and_controls(self):
        assert sanitize_input("\x1b[31mred\x1b[0m\x07 text\x00") == "red text"

    def test_keeps_whitespace(self):
        assert sanitize_input("line one\n\tline two\r\n") == "line one\n\tline two\r\n"

    def test_empty(self):
        assert sanitize_input("") == ""


class TestSanitizeOutput:
    def test_strips_osc_title_change(self):
        assert sanitize_output("before\x1b]0;pwned\x07after") == "beforeafter"
        assert sanitize_output("a\x1b]8;;http://x\x1b\\b") == "ab"

    def test_keeps_colors(self):
        assert sanitize_output("\x1b[1mbold\x1b[0m") == "\x1b[1mbold\x1b[0m"

    def test_strips_dcs_introducers(self):
        assert "\x1bP" not in sanitize_output("x\x1bPdata")


class TestSanitizeErrorPath:
    def test_replaces_working_directory(self):
        message = "Error reading file: [Errno 2] No such file: '/home/me/project/a.txt'"
        assert sanitize_error_path(message, "/home/me/project") == "Error reading file: [Errno 2] No such file: './a.txt'"

    def test_root_left_alone(self):
        assert sanitize_error_path("/etc/passwd", "/") == "/etc/passwd"


class TestSanitizeUrl:
    def test_normalizes(self):
        check = sanitize_url("  HTTPS://Example.COM  ")
        assert check.valid
        assert check.sanitized == "https://example.com/"

    def test_keeps_path_and_query(self):
        assert sanitize_url("http://example.com/a/b?q=1").sanitized == "http://example.com/a/b?q=1"

    def test_rejects_other_schemes(self):
        check = sanitize_url("ftp://example.com")
        assert not check.valid
        assert check.error == "Only HTTP and HTTPS protocols are allowed"

    def test_rejects_malformed(self):
        assert not sanitize_url("example.com").valid
        assert not sanitize_url("http://").valid
        assert not sanitize_url("http://example.com:99999/").valid
