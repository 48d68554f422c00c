"""RuleSet document format: the JSON shape rule sets are authored and published in.

A document lists percentages for five authored dimensions; the scored Idea
dimension is the sum of market and moat. Percentages must sum to 100
(within 0.01) for the defaults and for every sector override.

Example:
    {
      "version": "0.2.0",
      "dimensions": {"market": 20, "moat": 10, "financials": 25, "team": 25, "traction": 20},
      "sectors": {"FinTech": {"market": 15, "moat": 10, "financials": 35, "team": 20, "traction": 20}},
      "changeReason": "Weight financials higher for FinTech",
      "createdBy": "methodology-team"
    }
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal, InvalidOperation
from importlib import resources
from pathlib import Path
from typing import Any

from readiness.errors import ConfigurationError
from readiness.models.assessment import Bucket
from readiness.models.rule_set import DimensionWeights, RuleSet, parse_semver

logger = logging.getLogger(__name__)

DOCUMENT_DIMENSIONS = ("market", "moat", "financials", "team", "traction")
PERCENT_TOTAL = Decimal("100")
PERCENT_TOLERANCE = Decimal("0.01")

BUNDLED_PACKAGE = "readiness.rulesets.data"
BUNDLED_PATTERN = "scoring_rules.v*.json"

_ALLOWED_KEYS = {"version", "dimensions", "sectors", "changeReason", "createdBy"}


def _parse_percentages(raw: Any, label: str) -> dict[str, Decimal]:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{label} must be an object of percentages")

    missing = [d for d in DOCUMENT_DIMENSIONS if d not in raw]
    unknown = sorted(set(raw) - set(DOCUMENT_DIMENSIONS))
    if missing or unknown:
        raise ConfigurationError(
            f"{label} must list exactly {list(DOCUMENT_DIMENSIONS)}; "
            f"missing={missing}, unknown={unknown}",
            missing=missing,
        )

    percentages: dict[str, Decimal] = {}
    for name in DOCUMENT_DIMENSIONS:
        value = raw[name]
        if isinstance(value, bool):
            raise ConfigurationError(f"{label}.{name} must be a number, got {value!r}")
        try:
            # str() keeps float literals like 0.1 from dragging in binary noise.
            percentages[name] = Decimal(str(value))
        except InvalidOperation as e:
            raise ConfigurationError(f"{label}.{name} must be a number, got {value!r}") from e
        if not percentages[name].is_finite() or percentages[name] < 0:
            raise ConfigurationError(f"{label}.{name} must be a non-negative number")

    total = sum(percentages.values(), Decimal("0"))
    if abs(total - PERCENT_TOTAL) > PERCENT_TOLERANCE:
        raise ConfigurationError(f"{label} percentages sum to {total}, expected 100")
    return percentages


def _to_weights(percentages: dict[str, Decimal]) -> DimensionWeights:
    return DimensionWeights(
        idea=(percentages["market"] + percentages["moat"]) / PERCENT_TOTAL,
        financials=percentages["financials"] / PERCENT_TOTAL,
        team=percentages["team"] / PERCENT_TOTAL,
        traction=percentages["traction"] / PERCENT_TOTAL,
    )


def parse_rule_set_document(document: Any, *, created_by: str | None = None) -> RuleSet:
    """Build a RuleSet from a rule document.

    Args:
        document: Parsed JSON document.
        created_by: Publisher identity, used when the document names none.

    Returns:
        RuleSet with normalized-by-100 weights.

    Raises:
        ConfigurationError: On any structural or arithmetic problem.
    """
    if not isinstance(document, dict):
        raise ConfigurationError("Rule set document must be a JSON object")

    unknown = sorted(set(document) - _ALLOWED_KEYS)
    if unknown:
        raise ConfigurationError(f"Unknown rule set document keys: {unknown}")

    version = document.get("version")
    if not isinstance(version, str):
        raise ConfigurationError("Rule set document is missing 'version'", missing=["version"])
    parse_semver(version)

    if "dimensions" not in document:
        raise ConfigurationError(
            "Rule set document is missing 'dimensions'", missing=["dimensions"]
        )
    defaults = _to_weights(_parse_percentages(document["dimensions"], "dimensions"))

    sectors = document.get("sectors") or {}
    if not isinstance(sectors, dict):
        raise ConfigurationError("'sectors' must be an object keyed by bucket label")

    overrides: dict[Bucket, DimensionWeights] = {}
    for label, raw in sectors.items():
        try:
            bucket = Bucket(label)
        except ValueError as e:
            valid = [b.value for b in Bucket]
            raise ConfigurationError(
                f"Unknown bucket '{label}' in sectors; expected one of {valid}"
            ) from e
        overrides[bucket] = _to_weights(_parse_percentages(raw, f"sectors.{label}"))

    return RuleSet(
        version=version,
        dimension_weights=defaults,
        sector_overrides=overrides,
        created_by=document.get("createdBy") or created_by,
        change_reason=document.get("changeReason"),
    )


def load_rule_set_file(path: str | Path) -> RuleSet:
    """Read and parse a rule document from disk.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        document = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot load rule set file '{path}': {e}") from e
    return parse_rule_set_document(document)


def bundled_rule_sets() -> list[RuleSet]:
    """Rule sets packaged with the library, in SemVer order."""
    rule_sets = []
    for entry in resources.files(BUNDLED_PACKAGE).iterdir():
        if entry.is_file() and Path(entry.name).match(BUNDLED_PATTERN):
            rule_sets.append(parse_rule_set_document(json.loads(entry.read_text("utf-8"))))
    rule_sets.sort(key=lambda rs: rs.semver)
    logger.debug("Found %d bundled rule sets", len(rule_sets))
    return rule_sets
