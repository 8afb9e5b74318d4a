"""portal_import.config

YAML-based import policy.

Responsibilities:
  - Load and validate the policy file (config/import_policy.yml)
  - Expose the tunable constants the import engine depends on: the handicap
    formula, the team-name prefix rule used for disambiguation, and the
    spreadsheet placeholders treated as blank lane values
  - Hash the YAML content for traceability in run reports

Usage:
    from pathlib import Path
    from portal_import.config import load_policy

    policy = load_policy(Path("config/import_policy.yml"))
    policy.handicap_for(180)  # → 40
"""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HANDICAP_BASE_SCORE = 225
HANDICAP_MULTIPLIER = 0.9
TEAM_MATCH_MIN_PREFIX_LENGTH = 1
LANE_PLACEHOLDERS = ("#N/A",)

REQUIRED_YAML_KEYS = frozenset({"version", "handicap", "team_match"})
REQUIRED_HANDICAP_KEYS = frozenset({"base", "factor"})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class PolicyValidationError(ValueError):
    """Raised when an import policy file fails schema validation."""


# ---------------------------------------------------------------------------
# ImportPolicy dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImportPolicy:
    """Parsed, validated import policy."""

    version: str = "builtin"
    handicap_base: float = HANDICAP_BASE_SCORE
    handicap_factor: float = HANDICAP_MULTIPLIER
    team_min_prefix_length: int = TEAM_MATCH_MIN_PREFIX_LENGTH
    lane_placeholders: frozenset[str] = frozenset(LANE_PLACEHOLDERS)
    yaml_hash: str | None = None
    raw_yaml: str = field(repr=False, default="")

    def handicap_for(self, average: Any) -> int | None:
        """Return max(0, floor((base - average) * factor)), or None without an average."""
        if average is None:
            return None
        diff = Decimal(str(self.handicap_base)) - Decimal(str(average))
        return max(0, math.floor(diff * Decimal(str(self.handicap_factor))))

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "handicap_base": self.handicap_base,
            "handicap_factor": self.handicap_factor,
            "team_min_prefix_length": self.team_min_prefix_length,
            "lane_placeholders": sorted(self.lane_placeholders),
            "yaml_hash": self.yaml_hash,
        }


DEFAULT_POLICY = ImportPolicy()


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_policy(yaml_path: Path | None) -> ImportPolicy:
    """Load, validate, and return an ImportPolicy.

    Args:
        yaml_path: Path to the YAML policy file, or None for built-in defaults.

    Raises:
        PolicyValidationError: If any required field is missing or invalid.
        FileNotFoundError: If the YAML file does not exist.
    """
    if yaml_path is None:
        return DEFAULT_POLICY
    raw = Path(yaml_path).read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    validate_policy(data)
    team_match = data["team_match"] or {}
    return ImportPolicy(
        version=str(data["version"]),
        handicap_base=float(data["handicap"]["base"]),
        handicap_factor=float(data["handicap"]["factor"]),
        team_min_prefix_length=int(
            team_match.get("min_prefix_length", TEAM_MATCH_MIN_PREFIX_LENGTH)
        ),
        lane_placeholders=frozenset(
            str(p) for p in data.get("lane_placeholders", LANE_PLACEHOLDERS)
        ),
        yaml_hash=hashlib.sha256(raw.encode("utf-8")).hexdigest(),
        raw_yaml=raw,
    )


def validate_policy(data: Any) -> None:
    """Validate a parsed policy dict; raise PolicyValidationError on any problem."""
    if not isinstance(data, dict):
        raise PolicyValidationError("policy YAML must be a mapping at the top level")

    missing = REQUIRED_YAML_KEYS - set(data.keys())
    if missing:
        raise PolicyValidationError(f"policy YAML missing required keys: {sorted(missing)}")

    handicap = data["handicap"]
    if not isinstance(handicap, dict):
        raise PolicyValidationError("'handicap' must be a mapping")
    missing_h = REQUIRED_HANDICAP_KEYS - set(handicap.keys())
    if missing_h:
        raise PolicyValidationError(f"'handicap' missing keys: {sorted(missing_h)}")
    for key in REQUIRED_HANDICAP_KEYS:
        value = handicap[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise PolicyValidationError(f"handicap.{key} must be a number, got {value!r}")
    if handicap["factor"] < 0:
        raise PolicyValidationError("handicap.factor must be >= 0")

    team_match = data["team_match"]
    if team_match is not None and not isinstance(team_match, dict):
        raise PolicyValidationError("'team_match' must be a mapping")
    min_len = (team_match or {}).get("min_prefix_length", TEAM_MATCH_MIN_PREFIX_LENGTH)
    if isinstance(min_len, bool) or not isinstance(min_len, int) or min_len < 1:
        raise PolicyValidationError(
            f"team_match.min_prefix_length must be a positive integer, got {min_len!r}"
        )

    placeholders = data.get("lane_placeholders", LANE_PLACEHOLDERS)
    if not isinstance(placeholders, (list, tuple)):
        raise PolicyValidationError("'lane_placeholders' must be a list")
