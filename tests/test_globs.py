"""
Tests for glob matching — plugin patterns and ignore lists.
"""

import pytest

from sitesmith.core.engine.globs import expand_braces, glob_match, match_any


class TestExpandBraces:
    def test_no_braces(self):
        assert expand_braces("**/*.md") == ["**/*.md"]

    def test_alternatives(self):
        assert expand_braces("*.{md,txt}") == ["*.md", "*.txt"]

    def test_nested(self):
        assert expand_braces("a{b,c{d,e}}") == ["ab", "acd", "ace"]

    def test_unbalanced_is_literal(self):
        assert expand_braces("a{b,c") == ["a{b,c"]


class TestGlobMatch:
    @pytest.mark.parametrize("path", ["index.md", "posts/hello.md", "a/b/c/d.md"])
    def test_double_star_matches_any_depth(self, path):
        assert glob_match(path, "**/*.md")

    def test_single_star_stays_in_segment(self):
        assert glob_match("hello.md", "*.md")
        assert not glob_match("posts/hello.md", "*.md")

    def test_braces(self):
        assert glob_match("posts/a.markdown", "**/*.{md,markdown,mkd}")
        assert not glob_match("posts/a.txt", "**/*.{md,markdown,mkd}")

    def test_question_mark_and_class(self):
        assert glob_match("a1.txt", "a?.txt")
        assert glob_match("b.txt", "[abc].txt")
        assert not glob_match("d.txt", "[abc].txt")
        assert glob_match("d.txt", "[!abc].txt")

    def test_star_does_not_match_dotfiles(self):
        assert not glob_match(".hidden.md", "**/*.md")
        assert not glob_match(".git/config", "**")
        assert glob_match(".hidden.md", ".*.md")

    def test_directory_pattern_matches_directory_itself(self):
        assert glob_match("drafts", "drafts/**")
        assert glob_match("drafts/post.md", "drafts/**")
        assert not glob_match("published/post.md", "drafts/**")

    def test_windows_separators_normalized(self):
        assert glob_match("posts\\hello.md", "posts/*.md")


class TestMatchAny:
    def test_returns_first_matching_pattern(self):
        assert match_any("notes.txt", ["*.md", "*.txt", "**"]) == "*.txt"

    def test_none_when_no_match(self):
        assert match_any("notes.txt", ["*.md"]) is None
        assert match_any("notes.txt", []) is None
