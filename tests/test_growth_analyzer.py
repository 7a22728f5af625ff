"""Tests for GrowthAnalyzer."""

import random

import pytest

from sqlcapacity.capacity.capacity_planning import (
    GrowthAnalyzer,
    CapacityAnalysis,
    InsufficientData,
    TimeSample,
    TrendAnalysis,
    PREDICTION_HORIZONS,
    STABLE_MESSAGE,
)

DAY_MS = 86_400_000
BASE_TS = 1_700_000_000_000
GB = 1024 ** 3
MB = 1024 ** 2


@pytest.fixture
def analyzer():
    return GrowthAnalyzer()


def _linear(start, end, n):
    return [start + (end - start) * i / (n - 1) for i in range(n)]


class TestPreconditions:
    """Minimum history rules."""

    @pytest.mark.parametrize("count", range(0, 7))
    def test_fewer_than_seven_samples(self, analyzer, make_samples, count):
        samples = make_samples(_linear(GB, 10 * GB, 7)[:count], [MB] * count)
        result = analyzer.analyze(samples)

        assert isinstance(result, InsufficientData)
        assert result.sample_count == count

    def test_span_shorter_than_one_day(self, analyzer, make_samples):
        # 8 samples two hours apart
        samples = make_samples(_linear(GB, 2 * GB, 8), [MB] * 8, step_days=2 / 24)
        result = analyzer.analyze(samples)

        assert isinstance(result, InsufficientData)
        assert result.sample_count == 8
        assert result.time_span_days == pytest.approx(14 / 24)

    def test_all_samples_same_timestamp(self, analyzer):
        samples = [TimeSample(timestamp=BASE_TS, data_size=GB * i, log_size=MB) for i in range(10)]
        result = analyzer.analyze(samples)

        assert isinstance(result, InsufficientData)
        assert result.time_span_days == 0

    def test_exactly_one_day_span_is_enough(self, analyzer):
        samples = [TimeSample(timestamp=BASE_TS + i * DAY_MS // 6, data_size=GB, log_size=MB) for i in range(7)]
        result = analyzer.analyze(samples)

        assert isinstance(result, CapacityAnalysis)
        assert result.time_span_days == pytest.approx(1.0)


class TestDeterminism:
    def test_permuted_input_gives_identical_output(self, analyzer, make_samples):
        samples = make_samples(_linear(GB, 3 * GB, 15), _linear(200 * MB, 300 * MB, 15))
        shuffled = list(samples)
        random.Random(42).shuffle(shuffled)

        assert analyzer.analyze(samples) == analyzer.analyze(shuffled)
        assert analyzer.analyze(samples) == analyzer.analyze(samples)

    def test_current_snapshot_uses_latest_timestamp(self, analyzer, make_samples):
        samples = make_samples(_linear(GB, 2 * GB, 10), [100 * MB] * 10)
        result = analyzer.analyze(list(reversed(samples)))

        assert result.current_data_size_mb == pytest.approx(2048)
        assert result.daily_growth_data_mb == pytest.approx(1024 / 9)


class TestPredictions:
    def test_horizons_and_order(self, analyzer, make_samples):
        result = analyzer.analyze(make_samples([GB] * 10, [MB] * 10))

        assert [p.period for p in result.predictions] == ["1 Month", "3 Months", "6 Months", "1 Year"]
        assert [h.days for h in PREDICTION_HORIZONS] == [30, 90, 180, 365]

    def test_linear_projection(self, analyzer, make_samples):
        # 10 MB/day data growth, 2 MB/day log growth
        data = [1000 * MB + i * 10 * MB for i in range(10)]
        log = [100 * MB + i * 2 * MB for i in range(10)]
        result = analyzer.analyze(make_samples(data, log))

        one_month = result.predictions[0]
        assert one_month.data_size_mb == pytest.approx(1090 + 300)
        assert one_month.log_size_mb == pytest.approx(118 + 60)
        assert one_month.total_size_mb == pytest.approx(1208 + 360)
        assert one_month.growth_rate_data == pytest.approx(10)
        assert one_month.growth_rate_log == pytest.approx(2)

        one_year = result.predictions[-1]
        assert one_year.total_size_mb == pytest.approx(1208 + 12 * 365)

    def test_predictions_never_negative(self, analyzer, make_samples):
        data = _linear(10 * GB, 1 * GB, 10)
        log = _linear(2 * GB, 10 * MB, 10)
        result = analyzer.analyze(make_samples(data, log))

        assert result.daily_growth_total_mb < 0
        for p in result.predictions:
            assert p.data_size_mb >= 0
            assert p.log_size_mb >= 0
            assert p.total_size_mb >= 0
        assert result.predictions[-1].data_size_mb == 0
        assert result.predictions[-1].total_size_mb == 0


class TestTrend:
    def test_increasing_and_decreasing_are_symmetric(self, analyzer, make_samples):
        values = _linear(GB, 2 * GB, 10)
        growing = analyzer.analyze(make_samples(values, list(values)))
        shrinking = analyzer.analyze(make_samples(list(reversed(values)), list(reversed(values))))

        assert growing.trend_analysis.data_trend == "increasing"
        assert growing.trend_analysis.log_trend == "increasing"
        assert shrinking.trend_analysis.data_trend == "decreasing"
        assert shrinking.trend_analysis.log_trend == "decreasing"

    def test_flat_series_is_stable(self, analyzer, make_samples):
        result = analyzer.analyze(make_samples([5 * GB] * 12, [300 * MB] * 12))

        assert result.trend_analysis.data_trend == "stable"
        assert result.trend_analysis.log_trend == "stable"

    def test_threshold_is_five_mb_exclusive(self, analyzer, make_samples):
        at_threshold = [100 * MB] * 4 + [105 * MB] * 4
        above_threshold = [100 * MB] * 4 + [106 * MB] * 4
        log = [MB] * 8

        assert analyzer.analyze(make_samples(at_threshold, log)).trend_analysis.data_trend == "stable"
        assert analyzer.analyze(make_samples(above_threshold, log)).trend_analysis.data_trend == "increasing"

    def test_odd_count_splits_at_floor_midpoint(self, analyzer):
        # n=7 -> first half is 3 samples, second half 4
        values = [0.0] * 3 + [12.0] * 4
        assert analyzer.classify_trend(values) == "increasing"
        assert analyzer.classify_trend([10.0, 10.0, 10.0, 12.0, 12.0, 12.0, 6.0]) == "stable"


class TestVolatility:
    def test_constant_is_low(self, analyzer):
        assert analyzer.classify_volatility([500.0] * 10) == "low"

    def test_medium(self, analyzer):
        # mean 107, std 7 -> cv ~0.065
        assert analyzer.classify_volatility([100.0, 114.0] * 5) == "medium"

    def test_high(self, analyzer):
        # mean 115, std 15 -> cv ~0.13
        assert analyzer.classify_volatility([100.0, 130.0] * 5) == "high"

    def test_zero_mean_does_not_divide(self, analyzer, make_samples):
        result = analyzer.analyze(make_samples([0] * 8, [MB] * 8))

        assert result.trend_analysis.volatility == "low"
        assert result.current_data_size_mb == 0


class TestConfidence:
    @pytest.mark.parametrize("span_days,expected", [
        (7, ["medium", "medium", "low", "low"]),
        (7.5, ["high", "medium", "low", "low"]),
        (10, ["high", "medium", "low", "low"]),
        (20, ["high", "high", "low", "low"]),
        (30, ["high", "high", "low", "low"]),
        (40, ["high", "high", "medium", "medium"]),
    ])
    def test_confidence_table(self, analyzer, make_samples, span_days, expected):
        samples = make_samples([GB] * 11, [MB] * 11, step_days=span_days / 10)
        result = analyzer.analyze(samples)

        assert result.time_span_days == pytest.approx(span_days)
        assert [p.confidence_level for p in result.predictions] == expected

    def test_short_horizons_never_low_long_horizons_never_high(self, analyzer):
        for span in (1, 5, 8, 15, 31, 400):
            levels = [analyzer.confidence_for(h, span) for h in PREDICTION_HORIZONS]
            assert "low" not in levels[:2]
            assert "high" not in levels[2:]


class TestScenarios:
    def test_constant_sizes(self, analyzer, make_samples):
        result = analyzer.analyze(make_samples([1_000_000_000] * 10, [100_000_000] * 10))

        assert result.current_data_size_mb == pytest.approx(1_000_000_000 / MB)
        assert result.current_log_size_mb == pytest.approx(100_000_000 / MB)
        assert result.daily_growth_total_mb == pytest.approx(0)
        assert result.trend_analysis.data_trend == "stable"
        assert result.trend_analysis.log_trend == "stable"
        assert result.trend_analysis.volatility == "low"
        assert result.recommendations == (STABLE_MESSAGE,)
        assert result.fit_r_squared == 0.0

    def test_data_doubling(self, analyzer, make_samples):
        result = analyzer.analyze(make_samples(_linear(GB, 2 * GB, 10), [256 * MB] * 10))

        assert result.daily_growth_data_mb == pytest.approx(113.78, abs=0.01)
        assert result.daily_growth_log_mb == pytest.approx(0)
        assert result.trend_analysis.data_trend == "increasing"
        assert result.trend_analysis.volatility == "high"
        assert result.fit_r_squared == pytest.approx(1.0)

        recs = result.recommendations
        assert len(recs) == 4
        assert recs[0].startswith("High growth rate detected")
        assert recs[1].startswith("Data file is growing rapidly")
        assert "volatile" in recs[2]
        assert "triple" in recs[3]

    def test_log_growth(self, analyzer, make_samples):
        samples = make_samples([4 * GB] * 8, _linear(0.5 * GB, 1.5 * GB, 8), step_days=7.5 / 7)
        result = analyzer.analyze(samples)

        assert result.time_span_days == pytest.approx(7.5)
        assert result.daily_growth_log_mb == pytest.approx(1024 / 7.5)
        assert result.trend_analysis.log_trend == "increasing"
        assert result.trend_analysis.data_trend == "stable"
        assert any("more frequent log backups" in r for r in result.recommendations)
        assert result.predictions[0].confidence_level == "high"
        assert result.predictions[1].confidence_level == "medium"

    def test_missing_log_values_are_zero(self, analyzer, make_samples):
        data = [2 * GB + d * 10 * MB for d in range(10)]
        log = [None if d in (2, 5, 7) else 200 * MB for d in range(10)]
        result = analyzer.analyze(make_samples(data, log))

        assert result.current_log_size_mb == pytest.approx(200)
        assert result.daily_growth_log_mb == pytest.approx(0)
        assert result.daily_growth_data_mb == pytest.approx(10)
        # first half avg 160 MB, second half avg 120 MB
        assert result.trend_analysis.log_trend == "decreasing"
        assert result.trend_analysis.data_trend == "increasing"
        assert result.recommendations == (STABLE_MESSAGE,)


class TestRecommendations:
    def test_shrinking_database(self, analyzer, make_samples):
        data = [5 * GB - d * 40 * MB for d in range(14)]
        result = analyzer.analyze(make_samples(data, [300 * MB] * 14))

        assert result.daily_growth_total_mb == pytest.approx(-40)
        assert result.trend_analysis.data_trend == "decreasing"
        assert len(result.recommendations) == 1
        assert "archiving or cleanup" in result.recommendations[0]

    def test_tripling_follows_volatility(self, analyzer, make_samples):
        data = [100 * MB + d * 10 * MB for d in range(10)]
        result = analyzer.analyze(make_samples(data, [10 * MB] * 10))

        recs = result.recommendations
        volatility = next(i for i, r in enumerate(recs) if "volatile" in r)
        tripling = next(i for i, r in enumerate(recs) if "triple" in r)
        assert volatility < tripling
        # 10 MB/day is below both growth triggers
        assert not any(r.startswith("High growth rate") for r in recs)
        assert not any(r.startswith("Data file is growing rapidly") for r in recs)

    def test_rapid_log_growth_needs_increasing_trend(self, analyzer):
        trends = {"data_trend": "stable", "log_trend": "stable", "volatility": "low"}

        recs = analyzer.build_recommendations(0, 30, 30, TrendAnalysis(**trends), 1000, 1000)
        assert recs == [STABLE_MESSAGE]

        trends["log_trend"] = "increasing"
        recs = analyzer.build_recommendations(0, 30, 30, TrendAnalysis(**trends), 1000, 1000)
        assert len(recs) == 1
        assert "log backups" in recs[0]

    def test_custom_recommendation_triggers(self):
        trends = TrendAnalysis(data_trend="stable", log_trend="increasing", volatility="low")
        analyzer = GrowthAnalyzer(rapid_log_growth_mb_per_day=40, high_growth_mb_per_day=25)

        recs = analyzer.build_recommendations(0, 30, 30, trends, 1000, 1000)

        assert len(recs) == 1
        assert recs[0].startswith("High growth rate detected: 30.00 MB/day")

    def test_custom_tripling_factor(self, make_samples):
        data = [100 * MB + d * 10 * MB for d in range(10)]
        result = GrowthAnalyzer(tripling_factor=100).analyze(make_samples(data, [10 * MB] * 10))

        assert not any("triple" in r for r in result.recommendations)


class TestMalformedSamples:
    def test_missing_latest_data_size(self, analyzer, make_samples):
        data = [GB] * 9 + [None]
        result = analyzer.analyze(make_samples(data, [MB] * 10))

        assert result.current_data_size_mb == 0
        assert result.daily_growth_data_mb == pytest.approx(-1024 / 9)
        assert all(p.data_size_mb >= 0 for p in result.predictions)

    def test_nan_and_garbage_values_count_as_zero(self, analyzer, make_samples):
        data = [GB, float("nan"), GB, "n/a", GB, GB, GB, GB]
        result = analyzer.analyze(make_samples(data, [MB] * 8))

        assert isinstance(result, CapacityAnalysis)
        assert result.current_data_size_mb == pytest.approx(1024)

    def test_total_size_property(self):
        assert TimeSample(timestamp=0, data_size=10, log_size=5).total_size == 15
        assert TimeSample(timestamp=0, data_size=10).total_size is None
