"""Unit tests for input normalization."""

from __future__ import annotations

import pytest

from quash_service.core.exceptions import ServiceError
from quash_service.services import normalizer


class TestNormalizeRange:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (250, {"min": 0, "max": 250}),
            ("250", {"min": 0, "max": 250}),
            ([500, 100], {"min": 100, "max": 500}),
            ([10, 20, 30], {"min": 10, "max": 30}),
            ([42], {"min": 42, "max": 42}),
            ({"min": 5, "max": 9}, {"min": 5, "max": 9}),
            ({"0": 3, "1": 7}, {"min": 3, "max": 7}),
            ({"max": 40}, {"min": 0, "max": 40}),
            ({"min": 15}, {"min": 15, "max": 15}),
            ('{"min": 80, "max": 20}', {"min": 20, "max": 80}),
            ("[1, 2]", {"min": 1, "max": 2}),
        ],
    )
    def test_accepted_shapes(self, value: object, expected: dict[str, float]) -> None:
        assert normalizer.normalize_range(value, required=True) == expected

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "value",
        [
            [],
            "cheap",
            True,
            {"min": "a"},
            [1, None],
            float("nan"),
            {"max": float("inf")},
            10**400,
            [1, 10**400],
            {"min": 1, "max": 10**400},
        ],
    )
    def test_rejected_shapes(self, value: object) -> None:
        with pytest.raises(ServiceError) as exc_info:
            normalizer.normalize_range(value, required=True)
        assert exc_info.value.error == "INVALID_FIELD"
        assert exc_info.value.details == {"field": "range"}

    @pytest.mark.unit
    def test_result_is_always_ordered(self) -> None:
        for low, high in [(3, 1), (1, 3), (-5, -10), (0, 0)]:
            result = normalizer.normalize_range([low, high], required=True)
            assert result is not None
            assert result["min"] <= result["max"]

    @pytest.mark.unit
    def test_absent_optional_range(self) -> None:
        assert normalizer.normalize_range(None, required=False) is None
        assert normalizer.normalize_range("", required=False) is None

    @pytest.mark.unit
    def test_absent_required_range(self) -> None:
        with pytest.raises(ServiceError):
            normalizer.normalize_range(None, required=True)


class TestNumbers:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(3, 3.0), (2.5, 2.5), (" 7 ", 7.0), ("x", None), (True, None), (None, None)],
    )
    def test_to_number(self, value: object, expected: float | None) -> None:
        assert normalizer.to_number(value) == expected

    @pytest.mark.unit
    def test_reward_zero_is_allowed(self) -> None:
        assert normalizer.parse_reward(0, required=True) == 0

    @pytest.mark.unit
    def test_reward_negative_is_rejected(self) -> None:
        with pytest.raises(ServiceError) as exc_info:
            normalizer.parse_reward(-1, required=True)
        assert exc_info.value.details == {"field": "reward"}

    @pytest.mark.unit
    def test_reward_field_name_is_configurable(self) -> None:
        with pytest.raises(ServiceError) as exc_info:
            normalizer.parse_reward("abc", required=True, field="range")
        assert exc_info.value.details == {"field": "range"}

    @pytest.mark.unit
    @pytest.mark.parametrize("value", [0, -3, "none"])
    def test_amount_must_be_positive(self, value: object) -> None:
        with pytest.raises(ServiceError):
            normalizer.parse_amount(value, required=True)

    @pytest.mark.unit
    def test_to_number_huge_integer(self) -> None:
        assert normalizer.to_number(10**400) is None

    @pytest.mark.unit
    def test_huge_reward_is_invalid_field(self) -> None:
        with pytest.raises(ServiceError) as exc_info:
            normalizer.parse_reward(10**400, required=True)
        assert exc_info.value.error == "INVALID_FIELD"
        assert exc_info.value.details == {"field": "reward"}

    @pytest.mark.unit
    def test_huge_amount_is_invalid_field(self) -> None:
        with pytest.raises(ServiceError) as exc_info:
            normalizer.parse_amount(10**400, required=True)
        assert exc_info.value.error == "INVALID_FIELD"
        assert exc_info.value.details == {"field": "amount"}


class TestDeadline:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2030-01-15T12:00:00Z", "2030-01-15T12:00:00.000Z"),
            ("2030-01-15T14:00:00+02:00", "2030-01-15T12:00:00.000Z"),
            ("2030-01-15", "2030-01-15T00:00:00.000Z"),
            (0, "1970-01-01T00:00:00.000Z"),
            (1_000, "1970-01-01T00:00:01.000Z"),
        ],
    )
    def test_valid_deadlines(self, value: object, expected: str) -> None:
        assert normalizer.parse_deadline(value, required=True) == expected

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["soon", True, [2030], {"at": 1}, 10**400, float("inf")])
    def test_invalid_deadlines(self, value: object) -> None:
        with pytest.raises(ServiceError) as exc_info:
            normalizer.parse_deadline(value, required=True)
        assert exc_info.value.details == {"field": "deadline"}


class TestTextFields:
    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["local", "regional", "global"])
    def test_known_reach(self, value: str) -> None:
        assert normalizer.sanitize_reach(value) == value

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["GLOBAL", "", None, 3])
    def test_unknown_reach_is_dropped(self, value: object) -> None:
        assert normalizer.sanitize_reach(value) is None

    @pytest.mark.unit
    def test_title_is_trimmed(self) -> None:
        assert normalizer.normalize_title("  Paint fence ", required=True, max_length=50) == (
            "Paint fence"
        )

    @pytest.mark.unit
    def test_missing_title_message(self) -> None:
        with pytest.raises(ServiceError) as exc_info:
            normalizer.normalize_title(None, required=True, max_length=50)
        assert exc_info.value.message == "Title is required"

    @pytest.mark.unit
    def test_title_too_long(self) -> None:
        with pytest.raises(ServiceError):
            normalizer.normalize_title("x" * 51, required=True, max_length=50)

    @pytest.mark.unit
    def test_text_must_be_string(self) -> None:
        with pytest.raises(ServiceError) as exc_info:
            normalizer.normalize_text(12, field="message", max_length=50)
        assert exc_info.value.details == {"field": "message"}

    @pytest.mark.unit
    def test_attachments_limit(self) -> None:
        with pytest.raises(ServiceError):
            normalizer.normalize_attachments(["a", "b", "c"], max_items=2)

    @pytest.mark.unit
    def test_attachments_must_be_list(self) -> None:
        with pytest.raises(ServiceError):
            normalizer.normalize_attachments("a.png", max_items=2)
