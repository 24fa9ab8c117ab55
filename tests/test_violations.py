"""Tests for smith_validation.violations: violation value type and collection."""

from __future__ import annotations

import pytest

from smith_validation.violations import (
    AUTOMATION_THRESHOLD,
    ArchitecturalViolation,
    Severity,
    ViolationCollection,
)


def _v(
    severity: Severity | str = Severity.LOW,
    rule: str = "r",
    file: str = "a.swift",
    line: int = 1,
    confidence: float = 0.5,
    message: str = "m",
) -> ArchitecturalViolation:
    return ArchitecturalViolation(
        severity=severity,
        rule=rule,
        file=file,
        line=line,
        message=message,
        automation_confidence=confidence,
    )


class TestSeverity:
    def test_ordering(self) -> None:
        assert Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL

    def test_parse_case_insensitive(self) -> None:
        assert Severity.parse("High") is Severity.HIGH
        assert Severity.parse(Severity.LOW) is Severity.LOW

    def test_parse_unknown(self) -> None:
        with pytest.raises(ValueError, match="invalid severity 'urgent'"):
            Severity.parse("urgent")

    def test_str_is_lowercase_name(self) -> None:
        assert str(Severity.CRITICAL) == "critical"


class TestArchitecturalViolation:
    def test_string_severity_is_parsed(self) -> None:
        assert _v(severity="medium").severity is Severity.MEDIUM

    @pytest.mark.parametrize("confidence", [-0.01, 1.01])
    def test_confidence_out_of_range(self, confidence: float) -> None:
        with pytest.raises(ValueError, match="automation_confidence"):
            _v(confidence=confidence)

    def test_confidence_bounds_inclusive(self) -> None:
        assert _v(confidence=0.0).automation_confidence == 0.0
        assert _v(confidence=1.0).automation_confidence == 1.0

    def test_immutable(self) -> None:
        v = _v()
        with pytest.raises(AttributeError):
            v.line = 3  # type: ignore[misc]

    def test_metadata_is_read_only(self) -> None:
        v = ArchitecturalViolation(
            severity=Severity.LOW, rule="r", file="f", line=1, message="m", metadata={"k": "v"}
        )
        with pytest.raises(TypeError):
            v.metadata["k"] = "x"  # type: ignore[index]

    def test_equal_values_are_equal(self) -> None:
        assert _v() == _v()
        assert hash(_v()) == hash(_v())

    def test_auto_fix_threshold(self) -> None:
        assert AUTOMATION_THRESHOLD == 0.8
        assert _v(confidence=0.8).is_auto_fix_candidate
        assert not _v(confidence=0.79).is_auto_fix_candidate

    def test_to_dict_record(self) -> None:
        record = _v(severity="high", rule="X", line=7).to_dict()
        assert record == {
            "rule": "X",
            "severity": "high",
            "file": "a.swift",
            "line": 7,
            "message": "m",
            "recommendation": "",
            "automation_confidence": 0.5,
            "metadata": {},
        }


class TestViolationCollection:
    def test_sorted_by_severity_descending_and_stable(self) -> None:
        items = [
            _v(Severity.LOW, message="low-1"),
            _v(Severity.CRITICAL, message="crit"),
            _v(Severity.MEDIUM, message="med-1"),
            _v(Severity.HIGH, message="high"),
            _v(Severity.MEDIUM, message="med-2"),
            _v(Severity.LOW, message="low-2"),
        ]
        ordered = ViolationCollection(items).sorted_by_severity()
        assert [v.message for v in ordered] == [
            "crit",
            "high",
            "med-1",
            "med-2",
            "low-1",
            "low-2",
        ]

    def test_sorting_returns_new_collection(self) -> None:
        original = ViolationCollection([_v(Severity.LOW), _v(Severity.HIGH)])
        original.sorted_by_severity()
        assert [v.severity for v in original] == [Severity.LOW, Severity.HIGH]

    def test_automatable_filter(self) -> None:
        collection = ViolationCollection([_v(confidence=0.85), _v(confidence=0.79)])
        automatable = collection.automatable()
        assert len(automatable) == 1
        assert automatable[0].automation_confidence == 0.85

    def test_filter_and_count_by(self) -> None:
        collection = ViolationCollection(
            [
                _v(Severity.HIGH, rule="a", file="x.swift"),
                _v(Severity.LOW, rule="a", file="y.swift"),
                _v(Severity.HIGH, rule="b", file="x.swift"),
            ]
        )
        assert collection.count_by(severity="high") == 2
        assert collection.count_by(rule="a") == 2
        assert collection.count_by(file="x.swift", rule="b") == 1
        assert len(collection.filter(min_severity="medium")) == 2

    def test_merge_keeps_order(self) -> None:
        first = ViolationCollection([_v(message="1"), _v(message="2")])
        second = ViolationCollection([_v(message="3")])
        merged = ViolationCollection.merge([first, ViolationCollection(), second])
        assert [v.message for v in merged] == ["1", "2", "3"]
        assert first + second == merged

    def test_slice_returns_collection(self) -> None:
        collection = ViolationCollection([_v(message="1"), _v(message="2")])
        assert isinstance(collection[:1], ViolationCollection)
        assert collection[-1].message == "2"

    def test_by_severity_and_breakdown(self) -> None:
        collection = ViolationCollection([_v(Severity.HIGH), _v(Severity.HIGH), _v(Severity.LOW)])
        groups = collection.by_severity()
        assert list(groups) == [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]
        assert collection.severity_breakdown() == {"critical": 0, "high": 2, "medium": 0, "low": 1}
        assert not collection.has_critical

    def test_empty_str(self) -> None:
        assert str(ViolationCollection()) == "No violations found"
        assert not ViolationCollection()
