from datetime import datetime, timedelta
from typing import List, Optional

from compliance_calibrator import ComplianceCalibrator
from org_hierarchy import OrgChain
from seeded_random import DeterministicStream
from uar_config import UARConfig
from uar_models import (
    ACTIVE, CLOSED, COMPLETED_WITHIN_SLA, IN_PROGRESS, LEAVER, OPEN_PAST_SLA, OPEN_WITHIN_SLA,
    Campaign, DeprovisionInfo, Employee, UARRecord, compliance_for_phase,
)

START = datetime(2025, 3, 1, 9, 0, 0)

CHAIN = OrgChain("Jane Smith", "John Davis", "Robert Taylor", "Christopher Lee", "Andrew Jackson", "Andrew Jackson")

EMPLOYEE = Employee(
    employee_id="123456", first_name="Mary", last_name="Moore", name="Mary Moore",
    email="mary.moore@techcorp.com", username="mary.moore", job_title="Analyst",
    manager_name="Andrew Jackson", manager_email="andrew.jackson@techcorp.com",
    manager_employee_id="654321", org_chain=CHAIN,
)

CAMPAIGN = Campaign(
    campaign_id="CAMP-TEST0001", name="Leaver Campaign", campaign_type=LEAVER,
    created_at=START - timedelta(days=3), loaded_at=START - timedelta(days=1),
    start=START, end=START + timedelta(days=45), status=ACTIVE,
)


def make_record(index: int, status: str, phase: str, minutes: Optional[int] = None) -> UARRecord:
    deprovision = None
    if minutes is not None:
        deprovision = DeprovisionInfo(
            requested_at=START,
            minutes_to_deprovision=minutes,
            completed_at=START + timedelta(minutes=minutes),
            compliant=minutes <= 1440,
        )
    return UARRecord(
        unique_key=f"KEY{index}", campaign=CAMPAIGN, employee=EMPLOYEE,
        certification_id=f"{index:032x}", certification_name="Identity Access Review for Mary Moore",
        certification_status=status, certification_start=START,
        certification_end=START + timedelta(days=2) if status == CLOSED else None,
        certification_due=START + timedelta(days=7), certification_load=START,
        reviewer_name="Mary Moore", reviewer_email="mary.moore@techcorp.com", reviewer_type="self",
        phase_by_sla=phase, compliance_status=compliance_for_phase(phase),
        uar_source="sailpoint_identitynow", tl_date=START.replace(day=1, hour=0),
        total_certifications=100, completed_certifications=93, deprovision=deprovision,
    )


def make_records(count: int, status: str, phase: str, minutes: Optional[int] = None) -> List[UARRecord]:
    return [make_record(i, status, phase, minutes) for i in range(count)]


def test_upward_adjustment_hits_target_exactly() -> None:
    records = make_records(10, IN_PROGRESS, OPEN_PAST_SLA)
    calibrator = ComplianceCalibrator(UARConfig(), DeterministicStream(1))

    result = calibrator.calibrate_certifications(records, 0.5)

    assert result.target_compliant == 5
    assert result.flipped == 5
    assert result.target_met
    flipped = [r for r in records if r.is_compliant]
    assert len(flipped) == 5
    assert all(r.phase_by_sla == OPEN_WITHIN_SLA for r in flipped)


def test_downward_adjustment_flips_open_records() -> None:
    records = make_records(10, IN_PROGRESS, OPEN_WITHIN_SLA)
    calibrator = ComplianceCalibrator(UARConfig(), DeterministicStream(2))

    result = calibrator.calibrate_certifications(records, 0.2)

    assert result.final_compliant == 2
    assert sum(1 for r in records if r.phase_by_sla == OPEN_PAST_SLA) == 8


def test_closed_records_are_never_made_non_compliant() -> None:
    records = make_records(10, CLOSED, COMPLETED_WITHIN_SLA)
    calibrator = ComplianceCalibrator(UARConfig(), DeterministicStream(3))

    result = calibrator.calibrate_certifications(records, 0.5)

    assert result.skipped == 5
    assert result.flipped == 0
    assert result.final_compliant == 10
    assert not result.target_met
    assert all(r.phase_by_sla == COMPLETED_WITHIN_SLA for r in records)


def test_at_target_consumes_no_draws() -> None:
    records = make_records(4, IN_PROGRESS, OPEN_WITHIN_SLA)
    stream = DeterministicStream(4)
    result = ComplianceCalibrator(UARConfig(), stream).calibrate_certifications(records, 1.0)
    assert result.flipped == 0
    assert stream.draws == 0


def test_target_rounds_half_up() -> None:
    records = make_records(5, IN_PROGRESS, OPEN_PAST_SLA)
    result = ComplianceCalibrator(UARConfig(), DeterministicStream(5)).calibrate_certifications(records, 0.5)
    assert result.target_compliant == 3
    assert result.final_compliant == 3


def test_deprovision_upward_redraws_within_sla() -> None:
    records = make_records(10, CLOSED, COMPLETED_WITHIN_SLA, minutes=2000)
    records += make_records(3, CLOSED, COMPLETED_WITHIN_SLA)
    config = UARConfig()

    result = ComplianceCalibrator(config, DeterministicStream(6)).calibrate_deprovisions(records, 0.7)

    assert result.population == 10
    assert result.final_compliant == 7
    for record in records[:10]:
        deprov = record.deprovision
        assert deprov.completed_at == deprov.requested_at + timedelta(minutes=deprov.minutes_to_deprovision)
        assert deprov.compliant == (deprov.minutes_to_deprovision <= config.deprovision_sla_minutes)
        if deprov.compliant:
            assert config.min_deprovision_minutes <= deprov.minutes_to_deprovision <= 1440
    assert all(r.deprovision is None for r in records[10:])


def test_deprovision_downward_redraws_past_sla() -> None:
    records = make_records(10, CLOSED, COMPLETED_WITHIN_SLA, minutes=300)
    config = UARConfig()

    result = ComplianceCalibrator(config, DeterministicStream(7)).calibrate_deprovisions(records, 0.6)

    assert result.final_compliant == 6
    slow = [r.deprovision for r in records if not r.deprovision.compliant]
    assert len(slow) == 4
    assert all(1441 <= d.minutes_to_deprovision <= config.max_deprovision_minutes for d in slow)


def test_deprovision_without_terminations_is_skipped() -> None:
    records = make_records(5, CLOSED, COMPLETED_WITHIN_SLA)
    stream = DeterministicStream(8)
    result = ComplianceCalibrator(UARConfig(), stream).calibrate_deprovisions(records, 0.9)
    assert result.population == 0
    assert result.pool_exhausted
    assert stream.draws == 0


def test_deprovision_downward_skipped_when_sla_covers_max() -> None:
    records = make_records(10, CLOSED, COMPLETED_WITHIN_SLA, minutes=300)
    config = UARConfig(deprovision_sla_minutes=2880, max_deprovision_minutes=2880)
    stream = DeterministicStream(9)

    result = ComplianceCalibrator(config, stream).calibrate_deprovisions(records, 0.6)

    assert result.pool_exhausted
    assert result.flipped == 0
    assert stream.draws == 0
    assert all(r.deprovision.minutes_to_deprovision == 300 for r in records)


def test_deprovision_upward_skipped_when_min_exceeds_sla() -> None:
    records = make_records(10, CLOSED, COMPLETED_WITHIN_SLA, minutes=2000)
    config = UARConfig(deprovision_sla_minutes=20, min_deprovision_minutes=30)
    stream = DeterministicStream(10)

    result = ComplianceCalibrator(config, stream).calibrate_deprovisions(records, 0.6)

    assert result.pool_exhausted
    assert result.flipped == 0
    assert stream.draws == 0
    assert all(r.deprovision.minutes_to_deprovision == 2000 for r in records)
