"""
compliance_calibrator.py

Post-generation calibration of a UAR record population.

Generated records carry compliance labels that follow from their dates, so
the overall rate only approximates the configured target. The calibrator
flips a uniformly sampled subset of records so that the compliant count hits
round(N * target), updating every dependent field on the touched records:

- certification pass: phase-by-SLA label and compliance status
- deprovision pass: minutes to deprovision, completion timestamp, compliance

Closed certifications are never flipped to non-compliant (their phase is a
"Completed ..." label), so a downward certification adjustment can fall short
of the target. Shortfalls are logged, never raised.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, List, Sequence

from seeded_random import DeterministicStream
from uar_config import UARConfig
from uar_models import UARRecord, round_half_up


@dataclass
class CalibrationResult:
    """Outcome of one calibration pass."""
    name: str
    population: int
    initial_compliant: int
    target_compliant: int
    final_compliant: int
    flipped: int = 0
    skipped: int = 0
    pool_exhausted: bool = False

    @property
    def adjustment(self) -> int:
        return self.target_compliant - self.initial_compliant

    @property
    def target_met(self) -> bool:
        return self.final_compliant == self.target_compliant

    @property
    def final_rate(self) -> float:
        return self.final_compliant / self.population if self.population else 0.0

    def as_dict(self) -> dict:
        return {
            'Population': self.population,
            'Initial compliant': self.initial_compliant,
            'Target compliant': self.target_compliant,
            'Final compliant': self.final_compliant,
            'Flipped': self.flipped,
            'Skipped (closed)': self.skipped,
            'Target met': self.target_met,
        }


class ComplianceCalibrator:
    """Forces certification and deprovision compliance counts onto target rates."""

    def __init__(self, config: UARConfig, stream: DeterministicStream):
        self.config = config
        self.stream = stream
        self.logger = logging.getLogger(self.__class__.__name__)

    def _select(self, pool: Sequence[UARRecord], count: int) -> List[UARRecord]:
        return self.stream.sample(pool, min(count, len(pool)))

    def _start(self, name: str, population: Sequence[UARRecord], target_rate: float,
               is_compliant: Callable[[UARRecord], bool]) -> CalibrationResult:
        current = sum(1 for r in population if is_compliant(r))
        target = round_half_up(len(population) * target_rate)
        result = CalibrationResult(
            name=name,
            population=len(population),
            initial_compliant=current,
            target_compliant=target,
            final_compliant=current,
        )

        rate = current / len(population) if population else 0.0
        self.logger.info(f"{name}: current {current:,}/{len(population):,} ({rate:.2%}), "
                         f"target {target:,} ({target_rate:.2%}), adjustment {result.adjustment:+d}")
        return result

    def _finish(self, result: CalibrationResult, population: Sequence[UARRecord],
                is_compliant: Callable[[UARRecord], bool]) -> CalibrationResult:
        result.final_compliant = sum(1 for r in population if is_compliant(r))
        if result.target_met:
            self.logger.info(f"{result.name}: final {result.final_compliant:,}/{result.population:,} "
                             f"({result.final_rate:.2%})")
        else:
            self.logger.warning(f"{result.name}: target {result.target_compliant:,} not met, "
                                f"final {result.final_compliant:,}/{result.population:,} ({result.final_rate:.2%})")
        return result

    # ------------------------------------------------------------------ #
    # Certification compliance
    # ------------------------------------------------------------------ #

    def calibrate_certifications(self, records: Sequence[UARRecord], target_rate: float) -> CalibrationResult:
        """Flip certification compliance so the compliant count matches target_rate."""
        def is_compliant(r: UARRecord) -> bool:
            return r.is_compliant

        name = "Certification compliance"
        result = self._start(name, records, target_rate, is_compliant)

        if result.adjustment == 0:
            self.logger.info(f"{name}: already at target")
            return result

        if result.adjustment > 0:
            pool = [r for r in records if not r.is_compliant]
            if not pool:
                self.logger.warning(f"{name}: no non-compliant records to adjust, skipping")
                result.pool_exhausted = True
                return result

            for record in self._select(pool, result.adjustment):
                record.mark_compliant()
                result.flipped += 1
            result.pool_exhausted = len(pool) < result.adjustment
        else:
            pool = [r for r in records if r.is_compliant]
            if not pool:
                self.logger.warning(f"{name}: no compliant records to adjust, skipping")
                result.pool_exhausted = True
                return result

            for record in self._select(pool, -result.adjustment):
                if record.mark_non_compliant():
                    result.flipped += 1
                else:
                    result.skipped += 1
            result.pool_exhausted = len(pool) < -result.adjustment

        self.logger.info(f"{name}: flipped {result.flipped} records, skipped {result.skipped} closed")
        return self._finish(result, records, is_compliant)

    # ------------------------------------------------------------------ #
    # Deprovision compliance
    # ------------------------------------------------------------------ #

    def _set_minutes(self, record: UARRecord, minutes: int) -> None:
        deprov = record.deprovision
        deprov.minutes_to_deprovision = minutes
        deprov.completed_at = deprov.requested_at + timedelta(minutes=minutes)
        deprov.compliant = minutes <= self.config.deprovision_sla_minutes

    def calibrate_deprovisions(self, records: Sequence[UARRecord], target_rate: float) -> CalibrationResult:
        """Redraw deprovisioning minutes so the SLA-compliant count matches target_rate."""
        def is_compliant(r: UARRecord) -> bool:
            return r.deprovision_compliant is True

        name = "Deprovision compliance"
        population = [r for r in records if r.has_deprovision]
        result = self._start(name, population, target_rate, is_compliant)

        if not population:
            self.logger.warning(f"{name}: no termination records to adjust, skipping")
            result.pool_exhausted = True
            return result

        if result.adjustment == 0:
            self.logger.info(f"{name}: already at target")
            return result

        sla = self.config.deprovision_sla_minutes
        if result.adjustment > 0:
            pool = [r for r in population if not r.deprovision.compliant]
            low, high = self.config.min_deprovision_minutes, sla + 1
            needed = result.adjustment
        else:
            pool = [r for r in population if r.deprovision.compliant]
            low, high = sla + 1, self.config.max_deprovision_minutes + 1
            needed = -result.adjustment

        if high <= low:
            self.logger.warning(f"{name}: no minute values in [{low}, {high}) fit the configured bounds "
                                f"and SLA of {sla} minutes, skipping")
            result.pool_exhausted = True
            return result

        if not pool:
            self.logger.warning(f"{name}: no records on the required side of the SLA, skipping")
            result.pool_exhausted = True
            return result

        for record in self._select(pool, needed):
            self._set_minutes(record, self.stream.int_in(low, high))
            result.flipped += 1
        result.pool_exhausted = len(pool) < needed

        self.logger.info(f"{name}: redrew minutes on {result.flipped} records")
        return self._finish(result, population, is_compliant)
