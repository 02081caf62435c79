"""
modelreview/detectors/complexity.py

F-Score: a 0..99 complexity score for one formula.

    function footprint   sum of function weights (unknown -> default), capped
    nesting              2 per parenthesis level beyond the first, capped
    operators            one point per four operators, capped
    array                flat bonus for array formulas
    usage                bonus once a formula is reused often

The structural part depends only on the formula text; the usage bonus is
added once the number of occurrences is known.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from modelreview.core.config import cfg_get, load_function_weights
from modelreview.core.references import detect_volatile_functions, strip_quoted_segments

_OPERATOR_RE = re.compile(r"[+\-*/^&<>]=?|(?<![A-Z])MOD(?![A-Z])", re.IGNORECASE)
_FUNCTION_RE = re.compile(r"([A-Z_][A-Z0-9_.]*)\s*\(", re.IGNORECASE)


class ComplexityBand(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True)
class ComplexityWeights:
    """Immutable scoring table. Build with from_config() or pass a custom mapping."""

    function_weights: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    default_weight: int = 2
    function_cap: int = 60
    depth_cap: int = 16
    operator_cap: int = 8
    array_bonus: int = 6
    usage_bonus: Tuple[Tuple[int, int], ...] = ((100, 4), (20, 2))
    max_score: int = 99
    band_medium: int = 30
    band_high: int = 60

    def __post_init__(self) -> None:
        table = {str(k).upper(): int(v) for k, v in dict(self.function_weights).items()}
        object.__setattr__(self, "function_weights", MappingProxyType(table))
        bonus = tuple(sorted(((int(a), int(b)) for a, b in self.usage_bonus), reverse=True))
        object.__setattr__(self, "usage_bonus", bonus)

    def weight(self, function: str) -> int:
        return self.function_weights.get(function.upper(), self.default_weight)

    @classmethod
    def from_config(
        cls,
        cfg: Optional[Dict[str, Any]] = None,
        weights_path: Optional[str] = None,
    ) -> "ComplexityWeights":
        raw = cfg_get(cfg or {}, "app.complexity", {}) or {}
        d = cls()
        usage = raw.get("usage_bonus")
        if usage:
            usage_bonus = tuple((int(it["above"]), int(it["bonus"])) for it in usage)
        else:
            usage_bonus = d.usage_bonus
        return cls(
            function_weights=load_function_weights(weights_path),
            default_weight=int(raw.get("default_weight", d.default_weight)),
            function_cap=int(raw.get("function_cap", d.function_cap)),
            depth_cap=int(raw.get("depth_cap", d.depth_cap)),
            operator_cap=int(raw.get("operator_cap", d.operator_cap)),
            array_bonus=int(raw.get("array_bonus", d.array_bonus)),
            usage_bonus=usage_bonus,
            max_score=int(raw.get("max_score", d.max_score)),
            band_medium=int(raw.get("band_medium", d.band_medium)),
            band_high=int(raw.get("band_high", d.band_high)),
        )


@dataclass(frozen=True)
class ComplexityResult:
    score: int
    band: ComplexityBand
    function_score: int
    depth_adj: int
    operator_adj: int
    array_adj: int
    usage_adj: int
    function_count: int
    max_depth: int
    operator_count: int
    is_volatile: bool

    @property
    def base_score(self) -> int:
        return self.function_score + self.depth_adj + self.operator_adj + self.array_adj

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "band": self.band.value,
            "breakdown": {
                "functions": self.function_score,
                "depth": self.depth_adj,
                "operators": self.operator_adj,
                "array": self.array_adj,
                "usage": self.usage_adj,
            },
            "function_count": self.function_count,
            "max_depth": self.max_depth,
            "operator_count": self.operator_count,
            "is_volatile": self.is_volatile,
        }


def _sanitize(formula: str) -> str:
    f = (formula or "").strip()
    if f.startswith("{") and f.endswith("}"):
        f = f[1:-1]
    if f.startswith("="):
        f = f[1:]
    # string contents never count as functions or operators
    return strip_quoted_segments(f)


def _max_depth(expression: str) -> int:
    depth = 0
    deepest = 0
    for ch in expression:
        if ch == "(":
            depth += 1
            deepest = max(deepest, depth)
        elif ch == ")":
            depth = max(0, depth - 1)
    return max(deepest, 1)


class ComplexityScorer:
    def __init__(self, weights: Optional[ComplexityWeights] = None) -> None:
        self.weights = weights or ComplexityWeights.from_config()

    def band_for(self, score: int) -> ComplexityBand:
        if score >= self.weights.band_high:
            return ComplexityBand.HIGH
        if score >= self.weights.band_medium:
            return ComplexityBand.MEDIUM
        return ComplexityBand.LOW

    def usage_bonus(self, usage_count: int) -> int:
        for above, bonus in self.weights.usage_bonus:
            if usage_count > above:
                return bonus
        return 0

    def structure(self, formula: str, is_array: bool = False) -> ComplexityResult:
        """Score without any usage bonus."""
        w = self.weights
        expr = _sanitize(formula)
        names = [m.group(1).upper() for m in _FUNCTION_RE.finditer(expr)]
        operators = len(_OPERATOR_RE.findall(expr))
        depth = _max_depth(expr)

        function_score = min(w.function_cap, sum(w.weight(n) for n in names))
        depth_adj = min(w.depth_cap, max(depth - 1, 0) * 2)
        operator_adj = min(w.operator_cap, math.ceil(operators / 4))
        array_adj = w.array_bonus if is_array else 0

        score = self._clamp(function_score + depth_adj + operator_adj + array_adj)
        return ComplexityResult(
            score=score,
            band=self.band_for(score),
            function_score=function_score,
            depth_adj=depth_adj,
            operator_adj=operator_adj,
            array_adj=array_adj,
            usage_adj=0,
            function_count=len(names),
            max_depth=depth,
            operator_count=operators,
            is_volatile=bool(detect_volatile_functions(formula)),
        )

    def with_usage(self, base: ComplexityResult, usage_count: int) -> ComplexityResult:
        usage_adj = self.usage_bonus(int(usage_count))
        score = self._clamp(base.base_score + usage_adj)
        return replace(base, score=score, band=self.band_for(score), usage_adj=usage_adj)

    def score(self, formula: str, is_array: bool = False, usage_count: int = 1) -> ComplexityResult:
        return self.with_usage(self.structure(formula, is_array), usage_count)

    def _clamp(self, value: int) -> int:
        return max(0, min(self.weights.max_score, int(value)))
