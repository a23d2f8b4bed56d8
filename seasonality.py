import logging
import math
from datetime import datetime
from typing import Optional, Sequence, Tuple

from uar_config import UARConfig

MONTH_NAMES = ('Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
               'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec')

# 0-indexed months: Jun, Jul, Nov, Dec are slow; Jan-Apr are fast
BUSY_MONTHS = (5, 6, 10, 11)
EFFICIENT_MONTHS = (0, 1, 2, 3)


class SeasonalFactors:
    """
    Month-based multipliers for compliance and deprovisioning speed.

    A custom 12-entry table overrides the automatic curve. Tables of any other
    length are rejected once, at construction, with a warning, and the
    automatic curve is used instead.
    """

    def __init__(self, config: UARConfig):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

        self.compliance_weights = self._checked_table(
            config.monthly_compliance_weights, 'monthly_compliance_weights')
        self.deprovision_weights = self._checked_table(
            config.monthly_deprovision_weights, 'monthly_deprovision_weights')

    def _checked_table(self, table: Optional[Sequence[float]], name: str) -> Optional[Tuple[float, ...]]:
        if table is None:
            return None
        if len(table) != 12:
            self.logger.warning(f"{name} must have exactly 12 values, got {len(table)}. Using automatic pattern.")
            return None
        return tuple(table)

    @property
    def uses_custom_compliance(self) -> bool:
        return self.compliance_weights is not None

    @property
    def uses_custom_deprovision(self) -> bool:
        return self.deprovision_weights is not None

    def compliance_factor(self, date: datetime) -> float:
        """Multiplier in [1 - variance, 1 + variance] peaking at the configured peak month."""
        if not self.config.trendline_enabled:
            return 1.0

        month = date.month - 1
        if self.compliance_weights is not None:
            return self.compliance_weights[month]

        position = (month - self.config.peak_compliance_month + 12) % 12
        radians = (position / 12) * 2 * math.pi
        seasonal = (math.cos(radians) + 1) / 2
        return 1 + self.config.compliance_variance * (seasonal * 2 - 1)

    def deprovision_factor(self, date: datetime) -> float:
        """Multiplier applied to deprovisioning minutes; > 1.0 means slower."""
        if not self.config.trendline_enabled:
            return 1.0

        month = date.month - 1
        if self.deprovision_weights is not None:
            return self.deprovision_weights[month]

        impact = self.config.deprovision_seasonal_impact
        if month in BUSY_MONTHS:
            return 1 + impact * 0.7
        if month in EFFICIENT_MONTHS:
            return 1 - impact * 0.5

        variation = math.sin((month / 12) * math.pi * 2) * 0.15
        return 1 + variation * impact
