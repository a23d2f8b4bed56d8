import logging
from collections import Counter
from datetime import datetime, timedelta

import pytest

from compliance_calibrator import ComplianceCalibrator
from uar_config import UARConfig
from uar_data_generator import (
    CampaignGenerator, CurrencyResolver, DistributionValidator, EmployeeGenerator, QAReporter,
    RecordGenerator, UARDataGenerator, resolve_as_of,
)
from org_hierarchy import OrgHierarchyBuilder
from seasonality import SeasonalFactors
from seeded_random import DeterministicStream
from uar_models import (
    ACTIVE, CLOSED, COMPLETED, COMPLETED_PAST_SLA, COMPLETED_WITHIN_SLA, COMPLIANT, LEAVER, NOT_COMPLIANT,
    OPEN_PAST_SLA, OPEN_WITHIN_SLA, QUARTERLY, SPECIAL, STAGED, compliance_for_phase, round_half_up,
)

AS_OF = datetime(2025, 6, 30, 12, 0, 0)


def build_config(**global_overrides) -> UARConfig:
    settings = {
        "seed": 12345,
        "record_count": 1000,
        "employee_count": 200,
        "campaign_count": 20,
        "as_of": AS_OF.isoformat(),
    }
    settings.update(global_overrides)
    return UARConfig.from_dict({"global": settings})


@pytest.fixture(scope="module")
def result():
    return UARDataGenerator(build_config()).run()


def test_resolve_as_of_parses_iso_and_defaults_to_now() -> None:
    assert resolve_as_of("2025-06-30T12:00:00") == AS_OF
    assert resolve_as_of("2025-06-30T12:00:00+02:00") == AS_OF
    assert resolve_as_of(AS_OF) is AS_OF
    assert resolve_as_of(None).microsecond == 0


def test_record_count_is_exact(result) -> None:
    assert len(result.records) == 1000
    assert len(result.employees) == 200
    assert len(result.campaigns) == 20
    assert result.seed == 12345
    assert result.as_of == AS_OF


def test_record_counts_split_by_campaign_type() -> None:
    generator = UARDataGenerator(build_config())
    assert generator._record_counts() == {LEAVER: 350, QUARTERLY: 450, SPECIAL: 200}

    generator = UARDataGenerator(build_config(record_count=7))
    counts = generator._record_counts()
    assert sum(counts.values()) == 7
    assert counts[LEAVER] == round_half_up(7 * 0.35)


def test_same_seed_is_reproducible(result) -> None:
    replay = UARDataGenerator(build_config()).run()
    assert [r.unique_key for r in replay.records] == [r.unique_key for r in result.records]
    assert [r.compliance_status for r in replay.records] == [r.compliance_status for r in result.records]
    assert [r.is_current for r in replay.records] == [r.is_current for r in result.records]


def test_different_seed_changes_output(result) -> None:
    other = UARDataGenerator(build_config(seed=54321)).run()
    assert [r.unique_key for r in other.records] != [r.unique_key for r in result.records]


def test_unique_keys_are_uppercase_sha256(result) -> None:
    keys = [r.unique_key for r in result.records]
    assert all(len(k) == 64 and k == k.upper() for k in keys)
    assert len(set(keys)) == len(keys)


def test_certification_compliance_hits_target(result) -> None:
    compliant = sum(1 for r in result.records if r.is_compliant)
    assert compliant == 930
    assert result.calibration['certification'].target_met


def test_deprovision_compliance_hits_target(result) -> None:
    tracked = [r for r in result.records if r.has_deprovision]
    assert tracked
    compliant = sum(1 for r in tracked if r.deprovision.compliant)
    assert compliant == round_half_up(len(tracked) * 0.91)


def test_full_compliance_scenario() -> None:
    config = build_config(record_count=100, employee_count=20, campaign_count=5, compliance_rate=1.0)
    records = UARDataGenerator(config).run().records
    assert len(records) == 100
    assert all(r.is_compliant for r in records)


def test_record_fields_are_consistent(result) -> None:
    config = build_config()
    for r in result.records:
        campaign = r.campaign
        assert (r.certification_status == CLOSED) == (r.certification_end is not None)
        if r.certification_status == CLOSED:
            assert r.phase_by_sla in (COMPLETED_WITHIN_SLA, COMPLETED_PAST_SLA)
            assert r.certification_start <= r.certification_end <= campaign.end
            assert r.is_compliant
        else:
            assert r.phase_by_sla in (OPEN_WITHIN_SLA, OPEN_PAST_SLA)
        assert r.is_compliant == (r.phase_by_sla != OPEN_PAST_SLA)

        assert campaign.start <= r.certification_start <= campaign.start + timedelta(days=7)
        sla_days = (r.certification_due - r.certification_start) / timedelta(days=1)
        assert config.sla_min_days <= sla_days <= config.sla_max_days
        assert campaign.loaded_at <= r.certification_load <= campaign.start
        assert r.tl_date.day == 1 and r.tl_date.month == r.certification_start.month
        assert 50 <= r.total_certifications <= 200
        assert r.completed_certifications == int(r.total_certifications * config.compliance_rate)


def test_deprovision_presence_and_bounds(result) -> None:
    config = build_config()
    for r in result.records:
        if r.campaign.campaign_type == LEAVER:
            assert r.has_deprovision
        elif r.campaign.campaign_type == QUARTERLY:
            assert not r.has_deprovision

        if r.has_deprovision:
            d = r.deprovision
            assert config.min_deprovision_minutes <= d.minutes_to_deprovision <= config.max_deprovision_minutes
            assert d.completed_at == d.requested_at + timedelta(minutes=d.minutes_to_deprovision)
            assert d.compliant == (d.minutes_to_deprovision <= config.deprovision_sla_minutes)
            assert d.requested_at.date() == r.certification_load.date()
            assert 8 <= d.requested_at.hour < 18


def test_termination_tracking_can_be_disabled() -> None:
    config = UARConfig.from_dict({
        "global": {"seed": 5, "record_count": 200, "employee_count": 50, "campaign_count": 10,
                   "as_of": AS_OF.isoformat()},
        "termination": {"enabled": False},
    })
    result = UARDataGenerator(config).run()
    assert not any(r.has_deprovision for r in result.records)
    assert 'deprovision' not in result.calibration


def test_campaign_dates_and_status(result) -> None:
    window_start = AS_OF - timedelta(days=360)
    for c in result.campaigns:
        assert c.campaign_id.startswith("CAMP-") and len(c.campaign_id) == 13
        assert window_start <= c.start <= AS_OF
        assert c.start + timedelta(days=30) <= c.end <= c.start + timedelta(days=90)
        assert c.start - timedelta(days=7) <= c.created_at <= c.loaded_at <= c.start
        if c.end < AS_OF:
            assert c.status in (COMPLETED, ACTIVE)
        else:
            assert c.status in (ACTIVE, STAGED)


def test_leaver_campaign_names_reference_pool_employees() -> None:
    config = build_config()
    stream = DeterministicStream(99)
    hierarchy = OrgHierarchyBuilder().build()
    employees = EmployeeGenerator(config, stream, hierarchy).generate()
    campaigns = CampaignGenerator(config, stream, AS_OF).generate(employees)
    ids = {e.employee_id for e in employees}
    for c in campaigns:
        if c.campaign_type == LEAVER:
            emp_id = c.name.rsplit("Emp ID: ", 1)[1].rstrip(")")
            assert emp_id in ids


def test_employees_are_bound_to_their_manager(result) -> None:
    for e in result.employees:
        assert e.manager_name == e.org_chain.level_6 == e.org_chain.level_5
        assert e.email == f"{e.first_name.lower()}.{e.last_name.lower()}@techcorp.com"
        assert 100000 <= int(e.employee_id) < 1000000


def test_manager_reviews_go_to_the_employee_manager(result) -> None:
    for r in result.records:
        if r.reviewer_type == "manager":
            assert r.reviewer_name == r.employee.manager_name
            assert r.certification_name == f"Manager Access Review for {r.employee.name}"
        elif r.reviewer_type == "admin":
            assert r.reviewer_name == "techcorp_admin"
        elif r.reviewer_type == "reassignment":
            assert r.certification_name.endswith(f"to {r.reviewer_name}")


def test_currency_flags_latest_active_record(result) -> None:
    groups = {}
    for r in result.records:
        groups.setdefault((r.employee.employee_id, r.campaign.campaign_id), []).append(r)

    current = 0
    for group in groups.values():
        flagged = [r for r in group if r.is_current]
        assert len(flagged) <= 1
        if flagged:
            current += 1
            assert flagged[0].campaign.is_active
            assert flagged[0].certification_start == max(r.certification_start for r in group)
        elif group[0].campaign.is_active:
            pytest.fail("active group without a current record")
    assert current == result.current_count


def test_currency_resolution_is_idempotent(result) -> None:
    before = [r.is_current for r in result.records]
    count = CurrencyResolver().resolve(result.records)
    assert count == result.current_count
    assert [r.is_current for r in result.records] == before


def test_record_generator_is_deterministic() -> None:
    config = build_config()
    hierarchy = OrgHierarchyBuilder().build()

    def one_record():
        stream = DeterministicStream(42)
        employees = EmployeeGenerator(config, stream, hierarchy).generate()
        campaign = CampaignGenerator(config, stream, AS_OF).generate_one(employees)
        return RecordGenerator(config, stream, SeasonalFactors(config), AS_OF).generate(campaign, employees)

    assert one_record() == one_record()


def test_validator_and_report_cover_run(result) -> None:
    config = build_config()
    validation = DistributionValidator(config, result).validate()
    assert validation['status'] in ('passed', 'warnings')
    assert 'Certification status' in validation['distributions']

    reporter = QAReporter(result, config, validation)
    summary = reporter.generate_summary()
    assert summary['Overview']['Total records'] == "1,000"
    assert 'Monthly Trendline Analysis' in summary
    assert 'ODM - Access Termination Metrics' in summary

    text = reporter.render(summary)
    assert "UAR (USER ACCESS REVIEW) DATA GENERATOR STATISTICS" in text
    assert "--- Compliance ---" in text
    assert Counter(r.certification_status for r in result.records)[CLOSED] > 0


def test_recalibration_is_a_no_op(result) -> None:
    config = build_config()

    stream = DeterministicStream(1)
    calibrator = ComplianceCalibrator(config, stream)
    cert = calibrator.calibrate_certifications(result.records, config.compliance_rate)
    deprov = calibrator.calibrate_deprovisions(result.records, config.deprovision_compliance_rate)
    assert cert.flipped == 0 and deprov.flipped == 0
    assert stream.draws == 0


def test_malformed_table_is_reported_once_per_run(caplog: pytest.LogCaptureFixture) -> None:
    config = UARConfig.from_dict({
        "global": {"seed": 8, "record_count": 50, "employee_count": 20, "campaign_count": 5,
                   "as_of": AS_OF.isoformat()},
        "trendline": {"monthly_compliance_weights": [1.0] * 11},
    })
    with caplog.at_level(logging.WARNING):
        result = UARDataGenerator(config).run()
        QAReporter(result, config).generate_summary()

    warnings = [rec for rec in caplog.records if "monthly_compliance_weights" in rec.getMessage()]
    assert len(warnings) == 1
    assert result.seasonal is not None and not result.seasonal.uses_custom_compliance


def test_compliance_follows_phase_label() -> None:
    assert compliance_for_phase(OPEN_PAST_SLA) == NOT_COMPLIANT
    for phase in (OPEN_WITHIN_SLA, COMPLETED_WITHIN_SLA, COMPLETED_PAST_SLA):
        assert compliance_for_phase(phase) == COMPLIANT


def test_report_includes_calibration_outcomes(result) -> None:
    summary = QAReporter(result, build_config()).generate_summary()
    certification = summary['Calibration - certification']
    assert certification['Target compliant'] == 930
    assert certification['Final compliant'] == 930
    assert certification['Target met'] is True
    assert 'Calibration - deprovision' in summary
