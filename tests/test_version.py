"""Tests for sonar_orchestrator.version."""
import pytest

from sonar_orchestrator.version import Version, parse_version


class TestParsing:
    def test_full_version(self):
        v = Version("9.9.0.65466")
        assert (v.major, v.minor, v.patch) == (9, 9, 0)
        assert v.build_number == 65466
        assert v.qualifier is None

    def test_major_minor_only(self):
        v = Version("7.2")
        assert (v.major, v.minor, v.patch) == (7, 2, 0)

    def test_snapshot(self):
        v = Version("7.3-SNAPSHOT")
        assert v.qualifier == "SNAPSHOT"

    def test_milestone_with_build(self):
        v = Version("10.0.0-M1.1234")
        assert v.qualifier == "M1"
        assert v.build_number == 1234

    def test_str_keeps_original_text(self):
        assert str(Version("9.9.0.65466")) == "9.9.0.65466"

    def test_unparsable_raises(self):
        with pytest.raises(ValueError):
            Version("LATEST_RELEASE")

    def test_parse_version_returns_none(self):
        assert parse_version("not-a-version") is None
        assert parse_version("8.9") == Version("8.9")


class TestOrdering:
    def test_numeric_not_lexicographic(self):
        assert Version("10.0") > Version("9.9")

    def test_build_number(self):
        assert Version("9.9.0.2") < Version("9.9.0.10")

    def test_release_after_qualified(self):
        assert Version("7.3") > Version("7.3-SNAPSHOT")
        assert Version("7.3-RC1") < Version("7.3")

    def test_equality_and_hash(self):
        assert Version("7.2") == Version("7.2.0")
        assert len({Version("7.2"), Version("7.2.0")}) == 1

    def test_max(self):
        versions = [Version(v) for v in ("9.8", "10.1.0.5", "10.1.0.12", "9.9")]
        assert str(max(versions)) == "10.1.0.12"

    def test_is_greater_than_or_equals_ignores_patch(self):
        assert Version("5.5.1").is_greater_than_or_equals(5, 5)
        assert Version("5.5").is_greater_than_or_equals(5, 5)
        assert not Version("5.4.9").is_greater_than_or_equals(5, 5)
        assert Version("6.0").is_greater_than_or_equals(5, 5)
