# modelreview/core/config.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
RULES_PATH = CONFIG_DIR / "rules.yaml"
WEIGHTS_PATH = CONFIG_DIR / "function_weights.yaml"


class ConfigError(ValueError):
    """A configuration file could not be read or has the wrong shape."""


def load_rules_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads modelreview/config/rules.yaml, or an explicit rules file.

    The packaged file is optional: if it is missing or broken the built-in
    defaults apply. An explicit path must exist and parse to a mapping.
    """
    if path is None:
        try:
            raw = yaml.safe_load(RULES_PATH.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError):
            return {}
        return raw if isinstance(raw, dict) else {}

    try:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read rules file {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Rules file {path} must contain a mapping")
    return raw


def cfg_get(cfg: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Safely fetch a dotted-path value from nested dict configs."""
    if not path:
        return default
    cur: Any = cfg
    for key in str(path).split("."):
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur.get(key)
    return cur


def load_function_weights(path: Optional[str] = None) -> Dict[str, int]:
    """Function name (upper case) -> complexity weight."""
    p = Path(path) if path else WEIGHTS_PATH
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read function weights {p}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Function weights {p} must contain a mapping")
    return {str(k).upper(): int(v) for k, v in raw.items()}


@dataclass(frozen=True)
class DriftOptions:
    enabled: bool = True
    min_row_formula_count: int = 6
    dominant_ratio: float = 0.60
    max_findings: int = 50


@dataclass(frozen=True)
class ScanOptions:
    include_empty_cells: bool = True
    group_similar_formulas: bool = True
    target_sheets: Tuple[str, ...] = ()
    minutes_per_formula: float = 2.0
    massive_cell_threshold: int = 150_000
    block_rows: int = 200
    block_columns: int = 120
    max_formula_samples: int = 200
    max_findings: int = 400
    drift: DriftOptions = field(default_factory=DriftOptions)

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]] = None, **overrides: Any) -> "ScanOptions":
        cfg = cfg or {}
        scan = cfg_get(cfg, "app.scan", {}) or {}
        drift = cfg_get(cfg, "app.detectors.formula_drift", {}) or {}
        d = cls()
        opts = cls(
            include_empty_cells=bool(scan.get("include_empty_cells", d.include_empty_cells)),
            group_similar_formulas=bool(scan.get("group_similar_formulas", d.group_similar_formulas)),
            target_sheets=tuple(str(s) for s in (scan.get("target_sheets") or [])),
            minutes_per_formula=float(scan.get("minutes_per_formula", d.minutes_per_formula)),
            massive_cell_threshold=int(scan.get("massive_cell_threshold", d.massive_cell_threshold)),
            block_rows=int(scan.get("block_rows", d.block_rows)),
            block_columns=int(scan.get("block_columns", d.block_columns)),
            max_formula_samples=int(scan.get("max_formula_samples", d.max_formula_samples)),
            max_findings=int(scan.get("max_findings", d.max_findings)),
            drift=DriftOptions(
                enabled=bool(drift.get("enabled", True)),
                min_row_formula_count=int(drift.get("min_row_formula_count", 6) or 6),
                dominant_ratio=float(drift.get("dominant_ratio", 0.60) or 0.60),
                max_findings=int(drift.get("max_findings", 50) or 50),
            ),
        )
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if "target_sheets" in overrides:
            overrides["target_sheets"] = tuple(overrides["target_sheets"])
        return replace(opts, **overrides) if overrides else opts


@dataclass(frozen=True)
class MapOptions:
    block_rows: int = 200
    block_columns: int = 120
    max_cells: int = 250_000

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]] = None, **overrides: Any) -> "MapOptions":
        m = cfg_get(cfg or {}, "app.map", {}) or {}
        d = cls()
        opts = cls(
            block_rows=int(m.get("block_rows", d.block_rows)),
            block_columns=int(m.get("block_columns", d.block_columns)),
            max_cells=int(m.get("max_cells", d.max_cells)),
        )
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(opts, **overrides) if overrides else opts
