"""Unit tests for value converters."""

import pytest

from gitlab_reconciler.converters import (
    ACCESS_LEVELS,
    VISIBILITY_LEVELS,
    DateConverter,
    NestedListConverter,
    TimestampConverter,
)
from gitlab_reconciler.exceptions import ValidationError


class TestEnumConverter:
    """Test enum mapping."""

    def test_access_levels(self):
        """Test access level names and integers."""
        assert ACCESS_LEVELS.to_remote("developer", "access_level") == 30
        assert ACCESS_LEVELS.to_bag(40, "access_level") == "maintainer"

    def test_deprecated_alias(self):
        """Test that the master alias maps to maintainer."""
        assert ACCESS_LEVELS.to_remote("master", "access_level") == 40
        assert ACCESS_LEVELS.to_bag(40, "access_level") == "maintainer"

    def test_invalid_value(self):
        """Test rejection of values outside the allowed set."""
        with pytest.raises(ValidationError) as exc_info:
            VISIBILITY_LEVELS.to_remote("secret", "visibility_level")

        assert exc_info.value.value == "secret"

    def test_unknown_remote_value(self):
        """Test rejection of unknown remote constants."""
        with pytest.raises(ValidationError):
            ACCESS_LEVELS.to_bag(99, "access_level")

    def test_none_passthrough(self):
        """Test that absent values are not converted."""
        assert VISIBILITY_LEVELS.to_remote_value(None, "visibility_level") is None
        assert VISIBILITY_LEVELS.to_bag_value(None, "visibility_level") is None


class TestTimestampConverter:
    """Test RFC 3339 timestamps."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2024-03-01T10:20:30.123Z", "2024-03-01T10:20:30Z"),
            ("2024-03-01T12:20:30+02:00", "2024-03-01T10:20:30Z"),
            ("2024-03-01T10:20:30Z", "2024-03-01T10:20:30Z"),
        ],
    )
    def test_normalizes_to_utc(self, raw, expected):
        """Test normalization to second precision UTC."""
        assert TimestampConverter().to_bag(raw, "created_at") == expected

    def test_invalid(self):
        """Test rejection of malformed timestamps."""
        with pytest.raises(ValidationError):
            TimestampConverter().to_remote("yesterday", "expires_at")


class TestDateConverter:
    """Test calendar dates."""

    def test_valid(self):
        """Test a valid date."""
        assert DateConverter().to_remote("2025-12-31", "expires_at") == "2025-12-31"

    def test_invalid(self):
        """Test rejection of a non-date."""
        with pytest.raises(ValidationError):
            DateConverter().to_remote("31/12/2025", "expires_at")

    def test_truncates_timestamps(self):
        """Test that timestamps read back as dates."""
        assert DateConverter().to_bag("2025-12-31T00:00:00Z", "expires_at") == "2025-12-31"


class TestNestedListConverter:
    """Test flattening nested arrays."""

    def test_flattens_selected_fields(self):
        """Test that only declared fields survive, converted."""
        converter = NestedListConverter(
            {"id": "id", "access_level": "access_level"},
            converters={"access_level": ACCESS_LEVELS},
        )

        flattened = converter.to_bag(
            [{"id": 1, "access_level": 30, "extra": True}], "members"
        )

        assert flattened == [{"id": 1, "access_level": "developer"}]

    def test_rejects_non_list(self):
        """Test that a non-list remote value is rejected."""
        with pytest.raises(ValidationError):
            NestedListConverter({"id": "id"}).to_bag("nope", "members")

    def test_to_remote(self):
        """Test expansion back into remote objects."""
        converter = NestedListConverter(
            {"level": "access_level"}, converters={"level": ACCESS_LEVELS}
        )

        assert converter.to_remote([{"level": "owner"}], "members") == [
            {"access_level": 50}
        ]
