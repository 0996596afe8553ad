"""Tests for the catalog-backed legality validator."""

import pandas as pd
import pytest

from src.draft_engine.errors import ErrorCode, UnavailableError, ValidationError
from src.draft_engine.validator import (
    CATALOG_COLUMNS,
    CachingValidator,
    FormatCatalogValidator,
    LegalityValidator,
    ValidationResult,
    _parse_legal,
    _parse_numeric,
)


class _Unreachable(LegalityValidator):
    def validate(self, entity_id, format_id):
        raise ConnectionError("catalog service down")


# ── Parsing ──────────────────────────────────────────────────────────

class TestParsing:
    def test_numeric_with_commas(self):
        assert _parse_numeric("1,200") == 1200.0

    def test_numeric_blank_is_nan(self):
        assert pd.isna(_parse_numeric("  "))
        assert pd.isna(_parse_numeric("n/a"))

    @pytest.mark.parametrize("value, expected", [
        (True, True), ("yes", True), ("1", True), ("Legal", True),
        (False, False), ("no", False), ("0", False), (None, False),
    ])
    def test_legal_flags(self, value, expected):
        assert _parse_legal(value) is expected


# ── Catalog lookups ──────────────────────────────────────────────────

class TestFormatCatalogValidator:
    def test_legal_entity(self, validator):
        result = validator.validate("alpha", "default")
        assert result == ValidationResult(legal=True, cost=10, entity_name="Alpha")

    def test_cost_is_per_format(self, validator):
        assert validator.validate("alpha", "alt").cost == 7

    def test_banned_entity(self, validator):
        result = validator.validate("banned", "default")
        assert not result.legal
        assert "banned" in result.reason

    def test_unknown_entity_is_illegal(self, validator):
        assert not validator.validate("zulu", "default").legal
        assert not validator.validate("bravo", "alt").legal

    def test_require_legal_raises(self, validator):
        with pytest.raises(ValidationError) as exc:
            validator.require_legal("banned", "default")
        assert exc.value.code == ErrorCode.ENTITY_NOT_LEGAL

    def test_unreachable_validator_fails_closed(self):
        with pytest.raises(UnavailableError) as exc:
            _Unreachable().require_legal("alpha", "default")
        assert exc.value.code == ErrorCode.VALIDATOR_UNAVAILABLE
        assert exc.value.retryable

    def test_formats_and_entities(self, validator):
        assert validator.formats == ["alt", "default"]
        entities = validator.entities_for_format("default")
        assert "banned" not in entities["entity_id"].tolist()
        assert entities["cost"].tolist() == sorted(entities["cost"].tolist())
        assert validator.entities_for_format("missing").empty

    def test_missing_columns(self):
        with pytest.raises(ValueError, match="missing columns"):
            FormatCatalogValidator(pd.DataFrame({"entity_id": ["a"]}))

    def test_rows_without_cost_dropped(self):
        df = pd.DataFrame(
            [("default", "a", "A", "5", "yes"), ("default", "b", "B", "", "yes")],
            columns=CATALOG_COLUMNS,
        )
        v = FormatCatalogValidator(df)
        assert v.validate("a", "default").legal
        assert not v.validate("b", "default").legal


class TestFromCsv:
    def test_load_csv(self, tmp_path):
        path = tmp_path / "catalog.csv"
        path.write_text(
            "format_id,entity_id,name,cost,legal\n"
            'default,alpha,Alpha,"1,200",true\n'
            "default,bravo,Bravo,3,false\n"
        )
        v = FormatCatalogValidator.from_csv(path)
        assert v.validate("alpha", "default").cost == 1200
        assert not v.validate("bravo", "default").legal

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FormatCatalogValidator.from_csv(tmp_path / "nope.csv")


# ── Caching ──────────────────────────────────────────────────────────

class TestCachingValidator:
    def test_hits_and_clear(self, validator):
        cached = CachingValidator(validator)
        cached.validate("alpha", "default")
        cached.validate("alpha", "default")
        cached.validate("alpha", "alt")
        assert cached.hits == 1
        assert cached.misses == 2

        cached.clear()
        assert cached.hits == 0
        cached.validate("alpha", "default")
        assert cached.misses == 1

    def test_require_legal_through_cache(self, validator):
        cached = CachingValidator(validator)
        assert cached.require_legal("bravo", "default").cost == 1
        with pytest.raises(ValidationError):
            cached.require_legal("banned", "default")
