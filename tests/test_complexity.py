"""Tests for the F-Score complexity scorer."""

import pytest

from modelreview.core.config import load_rules_config
from modelreview.detectors.complexity import ComplexityBand, ComplexityScorer, ComplexityWeights


@pytest.fixture(scope="module")
def scorer():
    return ComplexityScorer(ComplexityWeights.from_config(load_rules_config()))


class TestScore:
    def test_simple_formula(self, scorer):
        r = scorer.score("=A1*12")
        assert r.function_score == 0
        assert r.depth_adj == 0
        assert r.operator_adj == 1
        assert r.score == 1
        assert r.band == ComplexityBand.LOW

    def test_breakdown(self, scorer):
        r = scorer.score("=IF(SUM(A1:A3)>10,VLOOKUP(A1,B:C,2,FALSE),0)")
        assert r.function_count == 3
        assert r.function_score == 2 + 1 + 3
        assert r.max_depth == 2
        assert r.depth_adj == 2
        assert r.operator_adj == 1
        assert r.score == 9

    def test_unknown_function_uses_default_weight(self, scorer):
        assert scorer.score("=MYUDF(A1)").function_score == 2

    def test_text_does_not_count(self, scorer):
        assert scorer.score('=A1&"SUM(1)+2"').function_count == 0

    def test_array_bonus(self, scorer):
        plain = scorer.score("=SUM(A1:A3*B1:B3)")
        array = scorer.score("{=SUM(A1:A3*B1:B3)}", is_array=True)
        assert array.score - plain.score == 6

    def test_volatile_flag(self, scorer):
        assert scorer.score("=OFFSET(A1,1,0)").is_volatile
        assert not scorer.score("=SUM(A1)").is_volatile

    def test_caps_and_clamp(self):
        heavy = ComplexityScorer(ComplexityWeights(function_weights={"X": 50}, function_cap=200))
        r = heavy.score("=X(X(1))")
        assert r.score == 99
        assert r.band == ComplexityBand.HIGH

    def test_depth_cap(self, scorer):
        deep = "=" + "ABS(" * 20 + "A1" + ")" * 20
        assert scorer.score(deep).depth_adj == 16


class TestUsage:
    def test_usage_thresholds(self, scorer):
        base = scorer.structure("=SUM(A1:A3*B1:B3)")
        assert scorer.with_usage(base, 20).score == base.score
        assert scorer.with_usage(base, 21).score == base.score + 2
        assert scorer.with_usage(base, 100).score == base.score + 2
        assert scorer.with_usage(base, 101).score == base.score + 4

    def test_monotonic_in_usage(self, scorer):
        formula = "=INDEX(B:B,MATCH(A1,C:C,0))"
        scores = [scorer.score(formula, usage_count=n).score for n in range(1, 250)]
        assert scores == sorted(scores)


class TestBands:
    @pytest.mark.parametrize(
        "score,band",
        [(0, ComplexityBand.LOW), (29, ComplexityBand.LOW), (30, ComplexityBand.MEDIUM), (59, ComplexityBand.MEDIUM), (60, ComplexityBand.HIGH)],
    )
    def test_band_for(self, scorer, score, band):
        assert scorer.band_for(score) == band

    def test_weights_are_read_only(self):
        weights = ComplexityWeights(function_weights={"sum": 1})
        assert weights.weight("SUM") == 1
        with pytest.raises(TypeError):
            weights.function_weights["SUM"] = 4
