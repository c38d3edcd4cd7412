"""
Tests for FaultPredictor
"""

from datetime import timedelta

import pytest

from pump_copilot.models.pump_models import DegradationTrend
from pump_copilot.services.fault_predictor import FaultPredictor, PumpSignals
from pump_copilot.settings import PredictionSettings
from tests.fixtures.sample_fixtures import make_series


@pytest.fixture
def predictor(clock):
    return FaultPredictor(
        PredictionSettings(
            prediction_window_days=7,
            min_training_samples=30,
            forecast_points=10,
            forecast_band_pct=10.0,
        ),
        clock=clock,
    )


class TestLowConfidencePrediction:

    def test_thin_data(self, predictor, sparse_samples, clock):
        """Below the training minimum every component gets 0.1"""
        prediction = predictor.predict(sparse_samples)

        assert set(prediction.component_probabilities) == {
            "motor", "bearing", "impeller", "seal", "control_system"
        }
        assert all(p == 0.1 for p in prediction.component_probabilities.values())
        assert prediction.failure_probability == 0.1
        assert prediction.remaining_useful_life_days == 7
        assert prediction.predicted_failure_time == clock.now + timedelta(days=7)
        assert prediction.degradation_trend == DegradationTrend.UNKNOWN
        assert prediction.confidence == pytest.approx(0.06)
        assert prediction.details["sample_count"] == 12

    def test_window_override(self, predictor, sparse_samples):
        assert predictor.predict(sparse_samples, 14).remaining_useful_life_days == 14

    def test_internal_error_degrades(self, predictor, healthy_samples, monkeypatch):
        monkeypatch.setattr(
            predictor, "score_components", lambda signals: 1 / 0
        )
        prediction = predictor.predict(healthy_samples)
        assert prediction.failure_probability == 0.1
        assert "prediction error" in prediction.details["reason"]


class TestHealthyPrediction:

    def test_no_component_risk(self, predictor, healthy_samples, clock):
        prediction = predictor.predict(healthy_samples)

        assert all(p == 0.0 for p in prediction.component_probabilities.values())
        assert prediction.failure_probability == 0.0
        assert prediction.remaining_useful_life_days == 28
        assert prediction.predicted_failure_time == clock.now + timedelta(days=28)
        assert prediction.details["bucketing_divergence"] is False
        assert prediction.confidence == pytest.approx(0.7)

    def test_degradation_stable(self, predictor, healthy_samples):
        assert predictor.predict(healthy_samples).degradation_trend == DegradationTrend.STABLE

    def test_forecast_band(self, predictor, healthy_samples):
        prediction = predictor.predict(healthy_samples)

        assert prediction.key_metric_forecast["power_kw"] == pytest.approx(5.0)
        low, high = prediction.confidence_intervals["power_kw"]
        assert low == pytest.approx(4.5)
        assert high == pytest.approx(5.5)


class TestComponentScores:

    def test_single_severe_vibration_spike(self, predictor, vibrating_samples):
        prediction = predictor.predict(vibrating_samples)

        assert prediction.component_probabilities["bearing"] == pytest.approx(0.4)
        assert prediction.failure_probability == pytest.approx(0.08)
        assert prediction.remaining_useful_life_days == 14
        assert "vibration_severe" in prediction.details["fired_heuristics"]["bearing"]

    def test_bearing_without_vibration_data(self, predictor):
        samples = make_series(40, vibration_mm_s=None)
        prediction = predictor.predict(samples)
        assert prediction.component_probabilities["bearing"] == pytest.approx(0.1)

    def test_motor_overheating(self, predictor):
        samples = make_series(40, water_temp_c=lambda i: 85.0 if i == 10 else 40.0)
        prediction = predictor.predict(samples)
        assert prediction.component_probabilities["motor"] == pytest.approx(0.3)
        assert prediction.component_probabilities["seal"] == pytest.approx(0.0)

    def test_control_fault_codes(self, predictor):
        samples = make_series(
            40,
            fault_code=lambda i: ("CTRL-01" if i % 2 else "E-7") if i < 4 else None,
        )
        prediction = predictor.predict(samples)
        assert prediction.component_probabilities["control_system"] == pytest.approx(0.15)

    def test_seal_wear_uses_whole_years(self, predictor):
        """Two years of runtime adds 0.2, not a fractional amount"""
        minutes = 2.5 * 8760 * 60 / 40
        samples = make_series(40, runtime_minutes=minutes)
        prediction = predictor.predict(samples)
        assert prediction.component_probabilities["seal"] == pytest.approx(0.2)

    def test_falling_pressure_is_rapid_degradation(self, predictor):
        samples = make_series(
            40,
            water_pressure_kpa=lambda i: 300.0 - 2 * i,
            flow_rate_m3h=20.0,
        )
        prediction = predictor.predict(samples)
        assert prediction.degradation_trend == DegradationTrend.RAPID
        assert prediction.component_probabilities["impeller"] == pytest.approx(0.3)


class TestBuckets:

    @pytest.mark.parametrize(
        "probability,expected",
        [(0.9, 1), (0.7, 3), (0.5, 7), (0.3, 14), (0.1, 28), (0.8, 3), (0.4, 14)],
    )
    def test_remaining_useful_life(self, probability, expected):
        assert FaultPredictor.remaining_useful_life(probability, 7) == expected

    def test_failure_offset(self):
        assert FaultPredictor.failure_time_offset(0.9, 30) == 4
        assert FaultPredictor.failure_time_offset(0.7, 30) == 10
        assert FaultPredictor.failure_time_offset(0.5, 30) == 30

    def test_next_value_extrapolates(self, predictor):
        assert predictor.predict_next_value([1.0, 2.0, 3.0, 4.0]) == pytest.approx(5.0)
        assert predictor.predict_next_value([2.0, 4.0]) == pytest.approx(3.0)


class TestPumpSignals:

    def test_rated_current_defaults(self):
        assert PumpSignals(make_series(3, current_amperage=None)).rated_current == 10.0
        assert PumpSignals(make_series(3)).rated_current == pytest.approx(12.0)

    def test_start_intervals(self):
        signals = PumpSignals(make_series(13))
        assert signals.start_intervals_minutes == [60.0, 60.0]

    def test_efficiency_series_skips_missing(self):
        samples = make_series(3, power_kw=lambda i: None if i == 1 else 5.0)
        assert len(PumpSignals(samples).efficiency_series) == 2
