"""Tests for .claicontext, .claiignore and glob translation."""

import pytest

from clai.context_files import glob_to_regex, load_context_file, load_ignore_patterns, should_ignore


class TestGlobToRegex:
    @pytest.mark.parametrize(
        "pattern,path,matches",
        [
            ("*.py", "main.py", True),
            ("*.py", "src/main.py", False),
            ("**/*.py", "main.py", True),
            ("**/*.py", "src/pkg/main.py", True),
            ("src/**", "src/a/b.txt", True),
            ("file?.txt", "file1.txt", True),
            ("file?.txt", "file10.txt", False),
            ("a+b.txt", "a+b.txt", True),
            ("a+b.txt", "aab.txt", False),
        ],
    )
    def test_matching(self, pattern, path, matches):
        assert bool(glob_to_regex(pattern).match(path)) is matches

    def test_case_insensitive(self):
        assert glob_to_regex("*.MD", case_insensitive=True).match("readme.md")
        assert not glob_to_regex("*.MD").match("readme.md")


class TestShouldIgnore:
    def test_no_patterns(self):
        assert not should_ignore("anything", [])

    def test_directory_pattern_hides_children(self):
        assert should_ignore("build", ["build/"])
        assert should_ignore("build/out/app.js", ["build/"])
        assert not should_ignore("rebuild/app.js", ["build/"])

    def test_name_pattern_matches_anywhere(self):
        assert should_ignore("src/gen/types.generated.ts", ["*.generated.ts"])

    def test_path_pattern_anchored(self):
        assert should_ignore("docs/api/index.html", ["docs/api"])
        assert not should_ignore("src/docs/api", ["docs/api"])

    def test_leading_dot_slash(self):
        assert should_ignore("./tmp/x", ["./tmp"])


class TestProjectFiles:
    def test_context_file(self, workdir):
        (workdir / ".claicontext").write_text("  Use tabs.\n")
        assert load_context_file(str(workdir)) == "\n\n## Project Context (from .claicontext)\n\nUse tabs."

    def test_missing_or_blank_context(self, workdir):
        assert load_context_file(str(workdir)) is None
        (workdir / ".claicontext").write_text("\n  \n")
        assert load_context_file(str(workdir)) is None

    def test_ignore_file(self, workdir):
        (workdir / ".claiignore").write_text("# comment\n\nbuild/\n  *.log  \n")
        assert load_ignore_patterns(str(workdir)) == ["build/", "*.log"]

    def test_missing_ignore_file(self, workdir):
        assert load_ignore_patterns(str(workdir)) == []
