"""Legality validation for draft entities.

The engine consumes validation as ``validate(entity_id, format_id)`` and
treats the returned cost as authoritative. ``FormatCatalogValidator`` backs
that contract with a per-format catalog loaded into a pandas DataFrame.
``CachingValidator`` wraps any validator with an explicitly owned cache: it
is constructed once by the hosting process, injected into controllers, and
cleared with ``clear()``.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

import pandas as pd

from src.draft_engine.errors import ErrorCode, UnavailableError, ValidationError

logger = logging.getLogger(__name__)

CATALOG_COLUMNS = ["format_id", "entity_id", "name", "cost", "legal"]

_TRUE_STRINGS = {"1", "true", "yes", "y", "legal"}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one entity against a format."""

    legal: bool
    cost: int
    reason: Optional[str] = None
    entity_name: Optional[str] = None


class LegalityValidator:
    """Contract for entity legality and cost lookup."""

    def validate(self, entity_id: str, format_id: str) -> ValidationResult:
        raise NotImplementedError

    def require_legal(self, entity_id: str, format_id: str) -> ValidationResult:
        """Validate and fail closed.

        Raises:
            ValidationError: If the entity is not legal in the format.
            UnavailableError: If the catalog cannot be reached.
        """
        try:
            result = self.validate(entity_id, format_id)
        except OSError as e:
            raise UnavailableError(
                f"Legality validator unavailable: {e}",
                ErrorCode.VALIDATOR_UNAVAILABLE,
                {"entity_id": entity_id, "format_id": format_id},
            ) from e
        if not result.legal:
            raise ValidationError(
                result.reason or f"{entity_id} is not legal in format {format_id}",
                {"entity_id": entity_id, "format_id": format_id},
            )
        return result


def _parse_numeric(value):
    """Parse a numeric string that may contain commas (e.g., '1,200' -> 1200.0)."""
    if pd.isna(value):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    s = str(value).replace(",", "").strip().strip('"')
    if s == "" or s.isspace():
        return float("nan")
    try:
        return float(s)
    except ValueError:
        return float("nan")


def _parse_legal(value) -> bool:
    if pd.isna(value):
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_STRINGS


class FormatCatalogValidator(LegalityValidator):
    """Validator over a catalog of (format_id, entity_id, name, cost, legal) rows.

    Entities missing from a format's catalog are illegal in that format.
    """

    def __init__(self, catalog: pd.DataFrame):
        missing = set(CATALOG_COLUMNS) - set(catalog.columns)
        if missing:
            raise ValueError(f"Catalog is missing columns: {sorted(missing)}")

        df = catalog[CATALOG_COLUMNS].copy()
        df["format_id"] = df["format_id"].astype(str).str.strip()
        df["entity_id"] = df["entity_id"].astype(str).str.strip()
        df["cost"] = df["cost"].apply(_parse_numeric)
        df["legal"] = df["legal"].apply(_parse_legal)

        # Rows without an id or a cost can never be drafted
        before = len(df)
        df = df[(df["entity_id"] != "") & df["cost"].notna()]
        df = df[df["cost"] >= 0]
        dropped = before - len(df)
        if dropped:
            logger.warning("Dropped %d catalog rows without a valid id or cost", dropped)

        df["cost"] = df["cost"].round().astype(int)
        self._catalog = df.drop_duplicates(
            subset=["format_id", "entity_id"], keep="last"
        ).set_index(["format_id", "entity_id"])
        logger.info(
            "Loaded catalog: %d entities across %d formats",
            len(self._catalog),
            df["format_id"].nunique(),
        )

    @classmethod
    def from_csv(cls, filepath: Path) -> "FormatCatalogValidator":
        """Load a catalog CSV.

        Raises:
            FileNotFoundError: If the catalog file does not exist.
        """
        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"Catalog file not found: {filepath}")
        df = pd.read_csv(filepath, dtype={"format_id": str, "entity_id": str})
        df = df.dropna(how="all")
        return cls(df)

    @property
    def formats(self):
        return sorted(self._catalog.index.get_level_values("format_id").unique())

    def entities_for_format(self, format_id: str) -> pd.DataFrame:
        """Legal entities of a format, cheapest first."""
        if format_id not in self.formats:
            return pd.DataFrame(columns=["entity_id", "name", "cost"])
        df = self._catalog.loc[format_id].reset_index()
        df = df[df["legal"]]
        return df[["entity_id", "name", "cost"]].sort_values(
            ["cost", "entity_id"]
        ).reset_index(drop=True)

    def validate(self, entity_id: str, format_id: str) -> ValidationResult:
        key = (str(format_id), str(entity_id))
        if key not in self._catalog.index:
            return ValidationResult(
                legal=False,
                cost=0,
                reason=f"{entity_id} is not in the {format_id} catalog",
            )
        row = self._catalog.loc[key]
        legal = bool(row["legal"])
        return ValidationResult(
            legal=legal,
            cost=int(row["cost"]),
            reason=None if legal else f"{row['name']} is banned in {format_id}",
            entity_name=str(row["name"]),
        )


class CachingValidator(LegalityValidator):
    """Memoizes another validator's results until ``clear()`` is called."""

    def __init__(self, inner: LegalityValidator):
        self.inner = inner
        self._cache: Dict[Tuple[str, str], ValidationResult] = {}
        self.hits = 0
        self.misses = 0

    def validate(self, entity_id: str, format_id: str) -> ValidationResult:
        key = (format_id, entity_id)
        cached = self._cache.get(key)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        result = self.inner.validate(entity_id, format_id)
        self._cache[key] = result
        return result

    def clear(self) -> None:
        logger.debug("Clearing validation cache (%d entries)", len(self._cache))
        self._cache.clear()
        self.hits = 0
        self.misses = 0
