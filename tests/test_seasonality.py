import logging
import math
from datetime import datetime

import pytest

from seasonality import SeasonalFactors
from uar_config import UARConfig


def test_automatic_compliance_curve_peaks_and_dips() -> None:
    factors = SeasonalFactors(UARConfig())
    assert not factors.uses_custom_compliance
    assert factors.compliance_factor(datetime(2025, 3, 15)) == pytest.approx(1.15)
    assert factors.compliance_factor(datetime(2025, 9, 15)) == pytest.approx(0.85)


def test_automatic_deprovision_factor_by_season() -> None:
    factors = SeasonalFactors(UARConfig())
    assert factors.deprovision_factor(datetime(2025, 7, 1)) == pytest.approx(1.21)
    assert factors.deprovision_factor(datetime(2025, 12, 1)) == pytest.approx(1.21)
    assert factors.deprovision_factor(datetime(2025, 1, 1)) == pytest.approx(0.85)
    expected_may = 1 + math.sin((4 / 12) * math.pi * 2) * 0.15 * 0.30
    assert factors.deprovision_factor(datetime(2025, 5, 1)) == pytest.approx(expected_may)


def test_custom_tables_override_automatic_curve() -> None:
    factors = SeasonalFactors(UARConfig.default())
    assert factors.uses_custom_compliance
    assert factors.uses_custom_deprovision
    assert factors.compliance_factor(datetime(2025, 12, 31)) == pytest.approx(0.82)
    assert factors.deprovision_factor(datetime(2025, 12, 31)) == pytest.approx(1.45)


def test_wrong_length_table_falls_back_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    config = UARConfig(monthly_deprovision_weights=(1.0,) * 11)
    with caplog.at_level(logging.WARNING):
        factors = SeasonalFactors(config)
    assert not factors.uses_custom_deprovision
    assert "exactly 12 values" in caplog.text
    assert factors.deprovision_factor(datetime(2025, 1, 1)) == pytest.approx(0.85)


def test_disabled_trendline_is_neutral() -> None:
    factors = SeasonalFactors(UARConfig(trendline_enabled=False))
    assert factors.compliance_factor(datetime(2025, 3, 1)) == 1.0
    assert factors.deprovision_factor(datetime(2025, 7, 1)) == 1.0


def test_wrong_length_compliance_table_falls_back_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    config = UARConfig(monthly_compliance_weights=(1.0,) * 13)
    with caplog.at_level(logging.WARNING):
        factors = SeasonalFactors(config)
    assert not factors.uses_custom_compliance
    assert "monthly_compliance_weights must have exactly 12 values" in caplog.text
    assert factors.compliance_factor(datetime(2025, 3, 15)) == pytest.approx(1.15)
