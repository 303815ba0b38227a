"""Unit tests for core data types."""

from pathlib import Path

import pytest

from patchguard.types import (
    Accepted,
    ApplyOutcome,
    BackupRecord,
    BatchReport,
    EditOperation,
    Rejected,
    TaskOutcome,
    ValidationResult,
)


class TestEditOperation:
    """Tests for EditOperation dataclass."""

    def test_valid_operation(self):
        op = EditOperation("src/a.py", "x = 1", "x = 2\ny = 3")
        assert op.line_delta == 1

    def test_empty_path_rejected(self):
        with pytest.raises(ValueError, match="target_path"):
            EditOperation("", "x", "y")

    def test_empty_search_rejected(self):
        with pytest.raises(ValueError, match="search_text"):
            EditOperation("a.py", "", "y")

    def test_empty_replace_allowed(self):
        assert EditOperation("a.py", "x\n", "").line_delta == -1

    def test_frozen(self):
        op = EditOperation("a.py", "x", "y")
        with pytest.raises(AttributeError):
            op.search_text = "z"


class TestValidationResult:
    """Tests for ValidationResult and its verdict."""

    def test_invalid_complexity(self):
        with pytest.raises(ValueError, match="Invalid complexity"):
            ValidationResult(is_valid=True, complexity="extreme")

    @pytest.mark.parametrize("score", [-1, 101])
    def test_score_out_of_range(self, score):
        with pytest.raises(ValueError, match="out of range"):
            ValidationResult(is_valid=True, security_score=score)

    def test_accepted_verdict(self):
        result = ValidationResult(is_valid=True)
        assert result.verdict() == Accepted(result)

    def test_rejected_verdict_carries_errors(self):
        result = ValidationResult(is_valid=False, errors=("a", "b"), security_score=10)
        verdict = result.verdict()
        assert isinstance(verdict, Rejected)
        assert verdict.reasons == ("a", "b")
        assert verdict.reason == "a; b"

    def test_rejected_without_errors_explains_score(self):
        verdict = ValidationResult(is_valid=False, security_score=40).verdict()
        assert verdict.reason == "Security score 40 below threshold"


class TestBackupRecord:
    def test_expiry(self):
        record = BackupRecord(Path("a"), Path("a.bak"), timestamp=100.0, ttl_seconds=60)
        assert record.expires_at == 160.0
        assert not record.is_expired(now=159.9)
        assert record.is_expired(now=160.0)


class TestReports:
    """Tests for BatchReport and TaskOutcome."""

    def _report(self):
        return BatchReport(
            outcomes=[
                ApplyOutcome("a.md", True, security_score=100),
                ApplyOutcome("b.md", False, error="Search text not found in file"),
                ApplyOutcome("a.md", True, security_score=90),
            ]
        )

    def test_counts(self):
        report = self._report()
        assert (report.attempted, report.applied, report.rejected) == (3, 2, 1)
        assert report.changed_paths == ["a.md"]

    def test_summary(self):
        summary = self._report().summary()
        assert summary.splitlines()[0] == "Attempted: 3  Applied: 2  Rejected: 1"
        assert "b.md: rejected (Search text not found in file)" in summary

    def test_task_outcome(self):
        outcome = TaskOutcome(report=self._report(), commit_sha="abc")
        assert outcome.ok
        data = outcome.to_dict()
        assert data["applied"] == 2
        assert data["commit_sha"] == "abc"
        assert data["outcomes"][1]["error"] == "Search text not found in file"

    def test_task_outcome_error(self):
        assert not TaskOutcome(report=BatchReport(), error="push failed").ok
