"""
Telemetry fixtures for testing
"""

from datetime import datetime, timedelta

import pytest

from pump_copilot.models.pump_models import Sample, ThresholdConfig

BASE_TIME = datetime(2025, 6, 1, 8, 0, 0)


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


def make_sample(index: int = 0, device_id: str = "PUMP-001", step_minutes: int = 10, **overrides):
    """
    Healthy reading number `index`. Pressure and flow move together so the
    efficiency scorer sees a clean pressure/flow correlation.
    """
    values = dict(
        device_id=device_id,
        timestamp=BASE_TIME + timedelta(minutes=index * step_minutes),
        pump_status=1 if index % 6 == 0 else 0,
        runtime_minutes=30.0,
        current_amperage=10.0,
        voltage=380.0,
        power_kw=5.0,
        energy_kwh=0.8,
        water_pressure_kpa=300.0 + index % 5,
        flow_rate_m3h=20.0 + (index % 5) * 0.1,
        water_temp_c=40.0,
        vibration_mm_s=2.0,
        noise_db=60.0,
        alarm_level=0,
    )
    values.update(overrides)
    return Sample(**values)


def make_series(count: int, device_id: str = "PUMP-001", step_minutes: int = 10, **per_index):
    """
    `count` healthy samples; each keyword is either a constant or a
    function of the sample index.
    """
    samples = []
    for i in range(count):
        overrides = {
            name: (value(i) if callable(value) else value) for name, value in per_index.items()
        }
        samples.append(make_sample(i, device_id=device_id, step_minutes=step_minutes, **overrides))
    return samples


@pytest.fixture
def base_time():
    return BASE_TIME


@pytest.fixture
def clock():
    """Fake clock starting at BASE_TIME"""
    return FakeClock()


@pytest.fixture
def healthy_samples():
    """40 steady readings ten minutes apart"""
    return make_series(40)


@pytest.fixture
def sparse_samples():
    """Too few readings for a full prediction"""
    return make_series(12)


@pytest.fixture
def vibrating_samples():
    """Healthy readings with a single 8 mm/s spike"""
    return make_series(40, vibration_mm_s=lambda i: 8.0 if i == 20 else 2.0)


@pytest.fixture
def faulty_samples():
    """Every fourth reading carries a fault code"""
    return make_series(40, fault_code=lambda i: "E101" if i % 4 == 0 else None)


# make_series(40) spans 6.5 h with 7 starts of 30 minutes each; these
# thresholds make every detector see it as on-target.
HEALTHY_THRESHOLDS = ThresholdConfig(startup_frequency=7 / 6.5, runtime_minutes=30.0)


@pytest.fixture
def healthy_thresholds():
    return HEALTHY_THRESHOLDS
