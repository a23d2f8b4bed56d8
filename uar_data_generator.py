#!/usr/bin/env python3
"""
uar_data_generator.py

Generates synthetic User Access Review (UAR) certification data including:
- employees bound to a six-level reporting hierarchy
- leaver, quarterly and special access review campaigns
- certification records with reviewer assignment, SLA due dates,
  phase-by-SLA / compliance labels and ODM deprovisioning timings

After generation the record population is calibrated so the overall
compliance rate and the deprovisioning SLA rate match the configured targets
exactly, then the latest record per employee and campaign is flagged current.

Usage:
    python uar_data_generator.py --config uar_config.json
    python uar_data_generator.py --seed 12345 --summary-only
    python uar_data_generator.py --seed 12345 --format tsv --output uar_data.tsv
"""

import argparse
import csv
import logging
import math
import sys
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import chisquare

import uar_sample_data as sample
from compliance_calibrator import CalibrationResult, ComplianceCalibrator
from org_hierarchy import OrgHierarchy, OrgHierarchyBuilder
from seasonality import MONTH_NAMES, SeasonalFactors
from seeded_random import DeterministicStream
from uar_config import ConfigLoader, UARConfig
from uar_models import (
    ACTIVE, ADMIN_REVIEW, CAMPAIGN_TYPES, CLOSED, COMPLETED, IN_PROGRESS, LEAVER,
    MANAGER_REVIEW, NEW, QUARTERLY, REASSIGNMENT, SELF_REVIEW, SPECIAL, STAGED,
    Campaign, DeprovisionInfo, Employee, UARRecord, compliance_for_phase,
    phase_by_sla, round_half_up, unique_key,
)

# Probability that a completed campaign is still reported ACTIVE (stale data)
STALE_CAMPAIGN_PROBABILITY = 0.10
# Probability that a running campaign is reported STAGED (not yet launched)
UNLAUNCHED_CAMPAIGN_PROBABILITY = 0.05

# Minute ranges [low, high) per deprovisioning speed bucket
DEPROVISION_SPEED_RANGES = {
    'fast': (60, 240),
    'typical': (240, 720),
    'slow': (720, 1440),
    'very_slow': (1440, 2880),
}


def email_for(name: str, domain: str) -> str:
    first, _, last = name.partition(' ')
    return f"{first.lower()}.{last.lower()}{domain}"


def resolve_as_of(value: Optional[Any]) -> datetime:
    """Parse the evaluation instant; defaults to the current time (whole seconds)."""
    if value is None:
        return datetime.now().replace(microsecond=0)
    if isinstance(value, datetime):
        as_of = value
    else:
        as_of = datetime.fromisoformat(str(value))
    return as_of.replace(tzinfo=None) if as_of.tzinfo else as_of


# =============================================================================
# Employee Generator
# =============================================================================

class EmployeeGenerator:
    """Generates the employee pool, each bound to a random reporting line."""

    def __init__(self, config: UARConfig, stream: DeterministicStream, hierarchy: OrgHierarchy):
        self.config = config
        self.stream = stream
        self.hierarchy = hierarchy
        self.logger = logging.getLogger(self.__class__.__name__)

    def _employee_id(self) -> str:
        return str(self.stream.int_in(100000, 1000000))

    def generate_one(self) -> Employee:
        first_name = self.stream.pick(sample.FIRST_NAMES)
        last_name = self.stream.pick(sample.LAST_NAMES)
        employee_id = self._employee_id()
        chain = self.hierarchy.random_chain(self.stream)
        job_title = self.stream.pick(sample.JOB_TITLES)
        manager_id = self._employee_id()

        return Employee(
            employee_id=employee_id,
            first_name=first_name,
            last_name=last_name,
            name=f"{first_name} {last_name}",
            email=f"{first_name.lower()}.{last_name.lower()}{self.config.email_domain}",
            username=f"{first_name.lower()}.{last_name.lower()}",
            job_title=job_title,
            manager_name=chain.manager,
            manager_email=email_for(chain.manager, self.config.email_domain),
            manager_employee_id=manager_id,
            org_chain=chain,
        )

    def generate(self) -> List[Employee]:
        """Generate employees strictly in sequence."""
        count = self.config.employee_count
        self.logger.info(f"Generating {count:,} employees...")
        employees = [self.generate_one() for _ in range(count)]
        self.logger.info(f"Generated {len(employees):,} employees")
        return employees


# =============================================================================
# Campaign Generator
# =============================================================================

class CampaignGenerator:
    """Generates review campaigns with date-consistent lifecycle status."""

    def __init__(self, config: UARConfig, stream: DeterministicStream, as_of: datetime):
        self.config = config
        self.stream = stream
        self.as_of = as_of
        self.window_start = as_of - timedelta(days=config.date_range_days)
        self.logger = logging.getLogger(self.__class__.__name__)

    def _campaign_type(self) -> str:
        roll = self.stream.next()
        if roll < self.config.leaver_pct:
            return LEAVER
        if roll < self.config.leaver_pct + self.config.quarterly_pct:
            return QUARTERLY
        return SPECIAL

    def _name(self, campaign_type: str, employees: Sequence[Employee]) -> str:
        """Fill a type-specific name template from the employee pool and date window."""
        template = self.stream.pick(sample.CAMPAIGN_NAME_TEMPLATES[campaign_type])

        if campaign_type == LEAVER:
            target = self.stream.pick(employees)
            return template.format(employee_name=target.name, emp_id=target.employee_id)

        if campaign_type == QUARTERLY:
            named_on = self.stream.date_between(self.window_start, self.as_of)
            hour = self.stream.int_in(0, 24)
            minute = self.stream.int_in(0, 60)
            group = self.stream.pick(sample.REVIEW_GROUPS)
            department = self.stream.pick(sample.DEPARTMENTS)
            return template.format(
                year=named_on.year,
                quarter=(named_on.month - 1) // 3 + 1,
                timestamp=f"{named_on:%Y%m%d}{hour:02d}{minute:02d}",
                group=group,
                department=department,
            )

        year = self.as_of.year - 4 + self.stream.int_in(0, 5)
        return template.format(year=year)

    def _status(self, start: datetime, end: datetime) -> str:
        if self.as_of < start:
            status = STAGED
        elif self.as_of <= end:
            status = ACTIVE
        else:
            status = COMPLETED

        roll = self.stream.next()
        if status == COMPLETED and roll < STALE_CAMPAIGN_PROBABILITY:
            return ACTIVE
        if status == ACTIVE and roll < UNLAUNCHED_CAMPAIGN_PROBABILITY:
            return STAGED
        return status

    def generate_one(self, employees: Sequence[Employee]) -> Campaign:
        campaign_type = self._campaign_type()
        name = self._name(campaign_type, employees)

        start = self.stream.date_between(self.window_start, self.as_of)
        end = self.stream.date_between(start + timedelta(days=30), start + timedelta(days=90))
        created = self.stream.date_between(start - timedelta(days=7), start)
        loaded = self.stream.date_between(created, start)
        campaign_id = f"CAMP-{self.stream.base36_token(8)}"

        return Campaign(
            campaign_id=campaign_id,
            name=name,
            campaign_type=campaign_type,
            created_at=created,
            loaded_at=loaded,
            start=start,
            end=end,
            status=self._status(start, end),
        )

    def generate(self, employees: Sequence[Employee]) -> List[Campaign]:
        count = self.config.campaign_count
        self.logger.info(f"Generating {count} campaigns...")
        campaigns = [self.generate_one(employees) for _ in range(count)]

        by_type = defaultdict(int)
        for campaign in campaigns:
            by_type[campaign.campaign_type] += 1
        self.logger.info(f"Campaigns created: {by_type[LEAVER]} leaver, "
                         f"{by_type[QUARTERLY]} quarterly, {by_type[SPECIAL]} special")
        return campaigns


# =============================================================================
# Record Generator
# =============================================================================

class RecordGenerator:
    """Synthesizes one certification record at a time for a given campaign."""

    def __init__(self, config: UARConfig, stream: DeterministicStream,
                 seasonal: SeasonalFactors, as_of: datetime):
        self.config = config
        self.stream = stream
        self.seasonal = seasonal
        self.as_of = as_of
        self.logger = logging.getLogger(self.__class__.__name__)

        self.sla_days_by_type = {
            LEAVER: config.leaver_sla_days,
            SPECIAL: config.special_sla_days,
            QUARTERLY: config.quarterly_sla_days,
        }

    def _reviewer(self, campaign: Campaign, employee: Employee) -> Tuple[str, str, str, str]:
        """Return (certification name, reviewer name, reviewer email, reviewer type)."""
        cfg = self.config
        is_admin = self.stream.next() < cfg.admin_reviewer_pct
        is_reassignment = self.stream.next() < cfg.reassignment_pct
        is_manager = (not is_admin and not is_reassignment
                      and self.stream.next() < cfg.manager_review_pct)

        if is_reassignment:
            original = f"{self.stream.pick(sample.FIRST_NAMES)} {self.stream.pick(sample.LAST_NAMES)}"
            new_reviewer = cfg.admin_reviewer if is_admin else self.stream.pick(sample.COMMON_REVIEWERS)
            review_kind = 'Identity' if campaign.campaign_type == LEAVER else 'Manager'
            cert_name = f"Reassignment from '{review_kind} Access Review for {original}' to {new_reviewer}"
            if is_admin:
                return cert_name, cfg.admin_reviewer, cfg.admin_email, ADMIN_REVIEW
            return cert_name, new_reviewer, email_for(new_reviewer, cfg.email_domain), REASSIGNMENT

        if is_manager:
            return (f"Manager Access Review for {employee.name}",
                    employee.manager_name, employee.manager_email, MANAGER_REVIEW)

        cert_name = f"Identity Access Review for {employee.name}"
        if is_admin:
            return cert_name, cfg.admin_reviewer, cfg.admin_email, ADMIN_REVIEW
        return cert_name, employee.name, employee.email, SELF_REVIEW

    def _status(self) -> str:
        roll = self.stream.next()
        closed_threshold = self.config.status_closed_pct
        new_threshold = closed_threshold + self.config.status_new_pct
        if roll < closed_threshold:
            return CLOSED
        if roll < new_threshold:
            return NEW
        return IN_PROGRESS

    def _sla_days(self, campaign_type: str) -> int:
        cfg = self.config
        days = self.sla_days_by_type.get(campaign_type, cfg.sla_typical_days)
        days += self.stream.int_in(-3, 4)
        return max(cfg.sla_min_days, min(cfg.sla_max_days, days))

    def _deprovision_minutes(self) -> int:
        cfg = self.config
        roll = self.stream.next()
        threshold = 0.0
        for bucket, pct in (('fast', cfg.fast_deprovision_pct),
                            ('typical', cfg.typical_deprovision_pct),
                            ('slow', cfg.slow_deprovision_pct)):
            threshold += pct
            if roll < threshold:
                return self.stream.int_in(*DEPROVISION_SPEED_RANGES[bucket])
        return self.stream.int_in(*DEPROVISION_SPEED_RANGES['very_slow'])

    def generate_deprovision(self, load_date: datetime, campaign_type: str) -> Optional[DeprovisionInfo]:
        """Termination request and deprovisioning timing for leaver and some special reviews."""
        cfg = self.config
        if not cfg.termination_tracking_enabled:
            return None

        if campaign_type == LEAVER:
            tracked = True
        elif campaign_type == SPECIAL:
            tracked = self.stream.next() < cfg.special_termination_probability
        else:
            tracked = False
        if not tracked:
            return None

        hour = self.stream.int_in(8, 18)
        minute = self.stream.int_in(0, 60)
        requested_at = load_date.replace(hour=hour, minute=minute, second=0, microsecond=0)

        minutes = self._deprovision_minutes()
        factor = self.seasonal.deprovision_factor(requested_at)
        minutes = max(cfg.min_deprovision_minutes,
                      min(cfg.max_deprovision_minutes, round_half_up(minutes * factor)))

        return DeprovisionInfo(
            requested_at=requested_at,
            minutes_to_deprovision=minutes,
            completed_at=requested_at + timedelta(minutes=minutes),
            compliant=minutes <= cfg.deprovision_sla_minutes,
        )

    def generate(self, campaign: Campaign, employees: Sequence[Employee]) -> UARRecord:
        employee = self.stream.pick(employees)
        cert_name, reviewer_name, reviewer_email, reviewer_type = self._reviewer(campaign, employee)
        status = self._status()

        cert_start = self.stream.date_between(campaign.start, campaign.start + timedelta(days=7))
        cert_end = self.stream.date_between(cert_start, campaign.end) if status == CLOSED else None
        cert_due = cert_start + timedelta(days=self._sla_days(campaign.campaign_type))
        cert_load = self.stream.date_between(campaign.loaded_at, campaign.start)

        source = self.stream.pick(sample.UAR_SOURCES)
        deprovision = self.generate_deprovision(cert_load, campaign.campaign_type)
        certification_id = self.stream.hex_token(32)

        total = self.stream.int_in(50, 201)
        completed = int(math.floor(total * self.config.compliance_rate))

        phase = phase_by_sla(status, cert_due, cert_end, self.as_of)

        return UARRecord(
            unique_key=unique_key(campaign.name, cert_name, certification_id, campaign.campaign_id,
                                  employee.employee_id, employee.name, employee.email),
            campaign=campaign,
            employee=employee,
            certification_id=certification_id,
            certification_name=cert_name,
            certification_status=status,
            certification_start=cert_start,
            certification_end=cert_end,
            certification_due=cert_due,
            certification_load=cert_load,
            reviewer_name=reviewer_name,
            reviewer_email=reviewer_email,
            reviewer_type=reviewer_type,
            phase_by_sla=phase,
            compliance_status=compliance_for_phase(phase),
            uar_source=source,
            tl_date=cert_start.replace(day=1, hour=0, minute=0, second=0, microsecond=0),
            total_certifications=total,
            completed_certifications=completed,
            deprovision=deprovision,
        )


# =============================================================================
# Currency Resolver
# =============================================================================

class CurrencyResolver:
    """Flags the latest record per (employee, campaign) as current when the campaign is active."""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def resolve(self, records: Sequence[UARRecord]) -> int:
        groups: Dict[Tuple[str, str], List[UARRecord]] = defaultdict(list)
        for record in records:
            record.is_current = False
            groups[(record.employee.employee_id, record.campaign.campaign_id)].append(record)

        current = 0
        for group in groups.values():
            latest = sorted(group, key=lambda r: r.certification_start, reverse=True)[0]
            if latest.campaign.is_active:
                latest.is_current = True
                current += 1

        self.logger.info(f"Marked {current:,} records current, {len(records) - current:,} historical "
                         f"across {len(groups):,} employee/campaign groups")
        return current


# =============================================================================
# Main Orchestrator
# =============================================================================

@dataclass
class GenerationResult:
    """Everything a pipeline run hands to the output and reporting collaborators."""
    records: List[UARRecord]
    employees: List[Employee]
    campaigns: List[Campaign]
    hierarchy: OrgHierarchy
    seed: int
    as_of: datetime
    calibration: Dict[str, CalibrationResult] = field(default_factory=dict)
    current_count: int = 0
    seasonal: Optional[SeasonalFactors] = None


class UARDataGenerator:
    """Runs the generation and calibration pipeline in its fixed order."""

    def __init__(self, config: UARConfig, as_of: Optional[datetime] = None):
        self.config = config
        self.as_of = resolve_as_of(as_of if as_of is not None else config.as_of)
        self.logger = logging.getLogger(self.__class__.__name__)

    def _record_counts(self) -> Dict[str, int]:
        """Leaver and quarterly shares are rounded; special takes the remainder."""
        total = self.config.record_count
        leaver = min(total, round_half_up(total * self.config.leaver_pct))
        quarterly = min(total - leaver, round_half_up(total * self.config.quarterly_pct))
        return {LEAVER: leaver, QUARTERLY: quarterly, SPECIAL: total - leaver - quarterly}

    def run(self) -> GenerationResult:
        """Execute the full pipeline and return the calibrated records."""
        cfg = self.config
        self.logger.info("=" * 60)
        self.logger.info("UAR DATA GENERATION - STARTING")
        self.logger.info("=" * 60)

        stream = DeterministicStream(cfg.seed)
        self.logger.info(f"Using seed: {stream.seed}")
        self.logger.info(f"Evaluation instant: {self.as_of.isoformat()}")
        self.logger.info(f"Config: {cfg.record_count:,} records, {cfg.employee_count:,} employees, "
                         f"{cfg.campaign_count} campaigns, target compliance {cfg.compliance_rate:.1%}")

        hierarchy = OrgHierarchyBuilder().build()
        seasonal = SeasonalFactors(cfg)

        # Step 1: Employees
        employees = EmployeeGenerator(cfg, stream, hierarchy).generate()

        # Step 2: Campaigns
        campaigns = CampaignGenerator(cfg, stream, self.as_of).generate(employees)

        # Step 3: Records, grouped by campaign type in fixed order
        record_generator = RecordGenerator(cfg, stream, seasonal, self.as_of)
        counts = self._record_counts()
        self.logger.info(f"Target record distribution: {counts[LEAVER]:,} leaver, "
                         f"{counts[QUARTERLY]:,} quarterly, {counts[SPECIAL]:,} special")

        records: List[UARRecord] = []
        for campaign_type in CAMPAIGN_TYPES:
            pool = [c for c in campaigns if c.campaign_type == campaign_type]
            if not pool and counts[campaign_type]:
                self.logger.warning(f"No {campaign_type} campaigns generated; drawing "
                                    f"{counts[campaign_type]:,} {campaign_type} records from all campaigns")
                pool = campaigns
            for _ in range(counts[campaign_type]):
                records.append(record_generator.generate(stream.pick(pool), employees))
        self.logger.info(f"Generated {len(records):,} records")

        # Step 4: Mix campaign types
        stream.shuffle(records)

        # Step 5: Calibration
        calibrator = ComplianceCalibrator(cfg, stream)
        calibration = {
            'certification': calibrator.calibrate_certifications(records, cfg.compliance_rate),
        }
        if cfg.termination_tracking_enabled:
            calibration['deprovision'] = calibrator.calibrate_deprovisions(
                records, cfg.deprovision_compliance_rate)

        # Step 6: Currency
        current_count = CurrencyResolver().resolve(records)

        self.logger.info(f"Consumed {stream.draws:,} random draws")
        self.logger.info("=" * 60)
        self.logger.info("UAR DATA GENERATION - COMPLETE")
        self.logger.info("=" * 60)

        return GenerationResult(
            records=records,
            employees=employees,
            campaigns=campaigns,
            hierarchy=hierarchy,
            seed=stream.seed,
            as_of=self.as_of,
            calibration=calibration,
            current_count=current_count,
            seasonal=seasonal,
        )


# =============================================================================
# Data Writer
# =============================================================================

CSV_COLUMNS = [
    'Campaign Created Datetime', 'Campaign End Datetime', 'Campaign Id', 'Campaign Load Date',
    'Campaign Name', 'Campaign Status', 'Certification Completed', 'Certification Due Date',
    'Certification End Date', 'Certification Id', 'Certification Load Date', 'Certification Name',
    'Certification Start Date', 'Certification Status', 'Compliance Status', 'Employee Email Address',
    'Employee Id', 'Employee Job Title', 'Employee Name', 'Is Active Campaign', 'Is Current',
    'Level 1', 'Level 2', 'Level 3', 'Level 4', 'Level 5', 'Level 6',
    'Manager Email Address', 'Manager Employee Id', 'Manager Full Name', 'Past Due', 'Phase By Sla',
    'Reviewer Mail Id', 'Reviewer Name', 'Tl Date', 'Uar Source', 'Unique Key', 'User Access Grouping',
    'Completed Certifications', 'Total Certifications', 'Data as of', 'Due in Days',
    'Termination Request Datetime', 'Deprovision Complete Datetime', 'Minutes To Deprovision',
    'Deprovision Compliance Status',
]

OUTPUT_EXTENSIONS = {'csv': 'csv', 'tsv': 'tsv', 'json': 'json'}


def format_long_datetime(value: Optional[datetime]) -> str:
    """M/D/YYYY h:mm:ss AM/PM"""
    if value is None:
        return ''
    hour = value.hour % 12 or 12
    meridiem = 'PM' if value.hour >= 12 else 'AM'
    return f"{value.month}/{value.day}/{value.year} {hour}:{value.minute:02d}:{value.second:02d} {meridiem}"


def format_short_date(value: Optional[datetime]) -> str:
    """M/D/YY"""
    if value is None:
        return ''
    return f"{value.month}/{value.day}/{value.year % 100:02d}"


def format_bool(value: bool) -> str:
    return 'TRUE' if value else 'FALSE'


def days_until(due: datetime, as_of: datetime) -> int:
    return round_half_up((due - as_of) / timedelta(days=1))


def user_access_grouping(days_until_due: int) -> str:
    if days_until_due < 0:
        return 'Past Due'
    if days_until_due <= 7:
        return '0-7 Days'
    if days_until_due <= 14:
        return '8-14 Days'
    if days_until_due <= 28:
        return '15-28 Days'
    return '29+ Days'


class DataWriter:
    """Serializes generated records to CSV, TSV or JSON."""

    def __init__(self, config: UARConfig, output_dir: Optional[Path] = None):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)
        self.output_dir = Path(output_dir) if output_dir is not None else Path(config.output_directory)

    def setup_output_dir(self) -> None:
        """Create output directory if it doesn't exist."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Output directory: {self.output_dir}")

    @staticmethod
    def titled_row(record: UARRecord, as_of: datetime) -> Dict[str, str]:
        """One CSV row; the due-date columns are evaluated at the run's as_of."""
        campaign = record.campaign
        employee = record.employee
        chain = employee.org_chain
        deprov = record.deprovision
        due_in_days = days_until(record.certification_due, as_of)
        past_due = due_in_days < 0 and not record.is_closed

        return {
            'Campaign Created Datetime': format_long_datetime(campaign.created_at),
            'Campaign End Datetime': format_long_datetime(campaign.end),
            'Campaign Id': campaign.campaign_id,
            'Campaign Load Date': format_short_date(campaign.loaded_at),
            'Campaign Name': campaign.name,
            'Campaign Status': campaign.status,
            'Certification Completed': format_bool(record.is_closed),
            'Certification Due Date': format_long_datetime(record.certification_due),
            'Certification End Date': format_long_datetime(record.certification_end),
            'Certification Id': record.certification_id,
            'Certification Load Date': format_long_datetime(record.certification_load),
            'Certification Name': record.certification_name,
            'Certification Start Date': format_long_datetime(record.certification_start),
            'Certification Status': record.certification_status,
            'Compliance Status': format_bool(record.is_compliant),
            'Employee Email Address': employee.email,
            'Employee Id': employee.employee_id,
            'Employee Job Title': employee.job_title,
            'Employee Name': employee.name,
            'Is Active Campaign': format_bool(campaign.is_active),
            'Is Current': format_bool(record.is_current),
            'Level 1': chain.level_1,
            'Level 2': chain.level_2,
            'Level 3': chain.level_3,
            'Level 4': chain.level_4,
            'Level 5': chain.level_5,
            'Level 6': chain.level_6,
            'Manager Email Address': employee.manager_email,
            'Manager Employee Id': employee.manager_employee_id,
            'Manager Full Name': employee.manager_name,
            'Past Due': 'Past Due' if past_due else '',
            'Phase By Sla': record.phase_by_sla,
            'Reviewer Mail Id': record.reviewer_email,
            'Reviewer Name': record.reviewer_name,
            'Tl Date': record.tl_date.strftime('%m/%d/%Y'),
            'Uar Source': record.uar_source,
            'Unique Key': record.unique_key,
            'User Access Grouping': user_access_grouping(due_in_days),
            'Completed Certifications': str(record.completed_certifications),
            'Total Certifications': str(record.total_certifications),
            'Data as of': format_short_date(campaign.loaded_at),
            'Due in Days': str(due_in_days),
            'Termination Request Datetime': format_long_datetime(deprov.requested_at) if deprov else '',
            'Deprovision Complete Datetime': format_long_datetime(deprov.completed_at) if deprov else '',
            'Minutes To Deprovision': str(deprov.minutes_to_deprovision) if deprov else '',
            'Deprovision Compliance Status': format_bool(deprov.compliant) if deprov else '',
        }

    def to_dataframe(self, result: GenerationResult, fmt: str = 'csv') -> pd.DataFrame:
        if fmt == 'csv':
            rows = [self.titled_row(r, result.as_of) for r in result.records]
            return pd.DataFrame(rows, columns=CSV_COLUMNS)
        return pd.DataFrame([r.to_dict() for r in result.records])

    def write_records(self, result: GenerationResult, output_path: Optional[Path] = None,
                      fmt: Optional[str] = None) -> Path:
        """Write records in the requested format and return the file path."""
        fmt = (fmt or self.config.output_format).lower()
        if fmt not in OUTPUT_EXTENSIONS:
            raise ValueError(f"Unsupported output format: {fmt}")

        if output_path is None:
            self.setup_output_dir()
            output_path = self.output_dir / f"uar_data.{OUTPUT_EXTENSIONS[fmt]}"
        else:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)

        df = self.to_dataframe(result, fmt)
        if fmt == 'csv':
            df.to_csv(output_path, index=False, quoting=csv.QUOTE_MINIMAL)
        elif fmt == 'tsv':
            df.to_csv(output_path, index=False, sep='\t', quoting=csv.QUOTE_NONE, escapechar='\\')
        else:
            df.to_json(output_path, orient='records', indent=2)

        self.logger.info(f"Written {len(df):,} records to {output_path} ({fmt.upper()})")
        return output_path

    def write_statistics(self, report: str, output_path: Optional[Path] = None) -> Path:
        """Write the statistics report to a companion text file."""
        if output_path is None:
            self.setup_output_dir()
            stamp = datetime.now().strftime('%Y-%m-%dT%H-%M-%S')
            output_path = self.output_dir / f"uar_stats_{stamp}.txt"

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(report)

        self.logger.info(f"Statistics saved to {output_path}")
        return output_path


# =============================================================================
# Distribution Validator
# =============================================================================

class DistributionValidator:
    """Checks generated category mixes against the configured proportions."""

    def __init__(self, config: UARConfig, result: GenerationResult, alpha: float = 0.01):
        self.config = config
        self.result = result
        self.alpha = alpha
        self.logger = logging.getLogger(self.__class__.__name__)

    def _goodness_of_fit(self, results: Dict[str, Any], label: str,
                         observed: Dict[str, int], expected_pct: Dict[str, float]) -> None:
        total = sum(observed.values())
        categories = [k for k, p in expected_pct.items() if p > 0]
        unexpected = [k for k, n in observed.items() if n and k not in categories]
        if unexpected:
            results['warnings'].append(f"{label}: observed categories with zero configured share: {unexpected}")
        if total == 0 or len(categories) < 2:
            return

        f_obs = np.array([observed.get(k, 0) for k in categories], dtype=float)
        weights = np.array([expected_pct[k] for k in categories], dtype=float)
        f_exp = weights / weights.sum() * f_obs.sum()
        if f_obs.sum() == 0:
            return

        stat, p_value = chisquare(f_obs, f_exp)
        results['distributions'][label] = {
            'observed': {k: int(n) for k, n in zip(categories, f_obs)},
            'expected': {k: round(float(e), 1) for k, e in zip(categories, f_exp)},
            'chi2': round(float(stat), 3),
            'p_value': round(float(p_value), 4),
        }
        if p_value < self.alpha:
            results['warnings'].append(f"{label} deviates from configured mix (p={p_value:.4f})")

    def validate(self) -> Dict[str, Any]:
        self.logger.info("Running distribution validation...")
        cfg = self.config
        results: Dict[str, Any] = {'status': 'passed', 'warnings': [], 'distributions': {}}

        status_counts = pd.Series([r.certification_status for r in self.result.records],
                                  dtype=object).value_counts().to_dict()
        self._goodness_of_fit(results, 'Certification status', status_counts, {
            CLOSED: cfg.status_closed_pct, NEW: cfg.status_new_pct, IN_PROGRESS: cfg.status_in_progress_pct,
        })

        type_counts = pd.Series([c.campaign_type for c in self.result.campaigns],
                                dtype=object).value_counts().to_dict()
        self._goodness_of_fit(results, 'Campaign type', type_counts, {
            LEAVER: cfg.leaver_pct, QUARTERLY: cfg.quarterly_pct, SPECIAL: cfg.special_pct,
        })

        if results['warnings']:
            results['status'] = 'warnings'
            self.logger.warning(f"Validation warnings: {results['warnings']}")
        else:
            self.logger.info("Distribution validation PASSED")
        return results


# =============================================================================
# QA Reporter
# =============================================================================

def _share(count: int, total: int) -> str:
    return f"{count:,} ({count / total:.1%})" if total else f"{count:,}"


class QAReporter:
    """Builds the statistics summary for a generation run."""

    def __init__(self, result: GenerationResult, config: UARConfig,
                 validation_results: Optional[Dict[str, Any]] = None):
        self.result = result
        self.config = config
        self.validation_results = validation_results or {}
        self.seasonal = result.seasonal if result.seasonal is not None else SeasonalFactors(config)
        self.logger = logging.getLogger(self.__class__.__name__)
        self.records_df = self._records_frame()

    def _records_frame(self) -> pd.DataFrame:
        rows = []
        for r in self.result.records:
            rows.append({
                'campaign_type': r.campaign.campaign_type,
                'certification_status': r.certification_status,
                'compliant': r.is_compliant,
                'reviewer_name': r.reviewer_name,
                'reviewer_type': r.reviewer_type,
                'uar_source': r.uar_source,
                'load_date': r.certification_load,
                'minutes_to_deprovision': r.deprovision.minutes_to_deprovision if r.deprovision else np.nan,
                'deprovision_compliant': r.deprovision_compliant,
            })
        columns = ['campaign_type', 'certification_status', 'compliant', 'reviewer_name', 'reviewer_type',
                   'uar_source', 'load_date', 'minutes_to_deprovision', 'deprovision_compliant']
        return pd.DataFrame(rows, columns=columns)

    def _monthly_trendline(self) -> List[str]:
        df = self.records_df.copy()
        df['month'] = pd.to_datetime(df['load_date']).dt.to_period('M')
        monthly = df.groupby('month').agg(
            records=('compliant', 'size'),
            closed=('certification_status', lambda s: int((s == CLOSED).sum())),
            compliant=('compliant', 'sum'),
            terminations=('minutes_to_deprovision', 'count'),
            avg_minutes=('minutes_to_deprovision', 'mean'),
        )

        lines = ["Month         Records  Closed%  Compliant%  Terminations  Avg Deprovision  Factor",
                 "-" * 80]
        for period, row in monthly.iterrows():
            name = f"{MONTH_NAMES[period.month - 1]} {period.year}"
            closed_pct = row['closed'] / row['records'] * 100
            compliant_pct = row['compliant'] / row['records'] * 100
            avg = f"{row['avg_minutes'] / 60:.1f}h" if row['terminations'] else 'N/A'
            factor = self.seasonal.compliance_factor(period.to_timestamp().to_pydatetime())
            lines.append(f"{name:<13} {int(row['records']):>7}  {closed_pct:>6.1f}%  {compliant_pct:>9.1f}%  "
                         f"{int(row['terminations']):>12}  {avg:>15}  {factor:>6.2f}")
        return lines

    def _trendline_insights(self) -> Dict[str, Any]:
        cfg = self.config
        insights: Dict[str, Any] = {}
        if self.seasonal.uses_custom_compliance:
            insights['Compliance pattern'] = 'CUSTOM monthly weights'
            insights['Compliance weights'] = ', '.join(f"{w:.2f}" for w in self.seasonal.compliance_weights)
        else:
            insights['Compliance pattern'] = 'AUTOMATIC (cosine)'
            insights['Peak compliance month'] = MONTH_NAMES[cfg.peak_compliance_month % 12]
            insights['Low compliance month'] = MONTH_NAMES[cfg.low_compliance_month % 12]
            insights['Compliance variance'] = f"±{cfg.compliance_variance:.0%}"

        if self.seasonal.uses_custom_deprovision:
            insights['Deprovision pattern'] = 'CUSTOM monthly weights'
            insights['Deprovision weights'] = ', '.join(f"{w:.2f}" for w in self.seasonal.deprovision_weights)
        else:
            insights['Deprovision pattern'] = 'AUTOMATIC (seasonal)'
            insights['Deprovision seasonal impact'] = f"{cfg.deprovision_seasonal_impact:.0%}"
        return insights

    def _odm_metrics(self) -> Dict[str, Any]:
        minutes = self.records_df['minutes_to_deprovision'].dropna()
        total = len(minutes)
        if total == 0:
            return {'Termination events': 0}

        avg_minutes = float(np.mean(minutes))
        compliant = int(self.records_df['deprovision_compliant'].eq(True).sum())
        return {
            'Termination events': f"{total:,}",
            'Average minutes to deprovision': f"{avg_minutes:.2f} ({avg_minutes / 60:.2f} hours)",
            'Fast (<=4 hours)': _share(int((minutes <= 240).sum()), total),
            'Slow (>=24 hours)': _share(int((minutes >= 1440).sum()), total),
            'Within SLA': _share(compliant, total),
            'Target SLA rate': f"{self.config.deprovision_compliance_rate:.1%}",
            'SLA minutes': self.config.deprovision_sla_minutes,
        }

    def generate_summary(self) -> Dict[str, Any]:
        """Generate the QA summary as ordered sections."""
        result = self.result
        df = self.records_df
        total = len(df)
        summary: Dict[str, Any] = {}

        summary['Overview'] = {
            'Total records': f"{total:,}",
            'Total employees': f"{len(result.employees):,}",
            'Total campaigns': len(result.campaigns),
            'Seed': result.seed,
            'Data as of': result.as_of.isoformat(),
            'Current records': f"{result.current_count:,}",
        }

        type_labels = {LEAVER: 'Leaver Campaigns', QUARTERLY: 'Quarterly Reviews', SPECIAL: 'Special Access Reviews'}
        type_counts = pd.Series([c.campaign_type for c in result.campaigns], dtype=object).value_counts()
        summary['Campaign Type Distribution'] = {
            type_labels[t]: _share(int(type_counts.get(t, 0)), len(result.campaigns)) for t in CAMPAIGN_TYPES
        }
        status_counts = pd.Series([c.status for c in result.campaigns], dtype=object).value_counts()
        summary['Campaign Status Distribution'] = {
            s: _share(int(status_counts.get(s, 0)), len(result.campaigns)) for s in (STAGED, ACTIVE, COMPLETED)
        }

        cert_counts = df['certification_status'].value_counts()
        summary['Certification Status Distribution'] = {
            s: _share(int(cert_counts.get(s, 0)), total) for s in (CLOSED, NEW, IN_PROGRESS)
        }

        compliance = {
            'Compliant records': _share(int(df['compliant'].sum()), total),
            'Target rate': f"{self.config.compliance_rate:.1%}",
        }
        for name, calibration in result.calibration.items():
            compliance[f"Calibration ({name})"] = (
                f"{calibration.initial_compliant:,} -> {calibration.final_compliant:,} "
                f"(target {calibration.target_compliant:,}, flipped {calibration.flipped:,}"
                f"{', skipped ' + str(calibration.skipped) if calibration.skipped else ''}"
                f"{'' if calibration.target_met else ', TARGET NOT MET'})"
            )
        summary['Compliance'] = compliance
        for name, calibration in result.calibration.items():
            summary[f"Calibration - {name}"] = calibration.as_dict()

        reviewer_counts = df['reviewer_type'].value_counts()
        reviewers = {
            f"Admin Reviews ({self.config.admin_reviewer})": _share(int(reviewer_counts.get(ADMIN_REVIEW, 0)), total),
            'Reassignments': _share(int(reviewer_counts.get(REASSIGNMENT, 0)), total),
            'Manager Reviews': _share(int(reviewer_counts.get(MANAGER_REVIEW, 0)), total),
            'Self Reviews': _share(int(reviewer_counts.get(SELF_REVIEW, 0)), total),
        }
        summary['Reviewer Type Analysis'] = reviewers

        top = (df.loc[df['reviewer_name'] != self.config.admin_reviewer, 'reviewer_name']
               .value_counts().head(10))
        summary['Top 10 Reviewers (excluding admin)'] = {name: _share(int(n), total) for name, n in top.items()}

        summary['Source System Distribution'] = {
            source: _share(int(n), total) for source, n in df['uar_source'].value_counts().items()
        }

        if total:
            load_dates = pd.to_datetime(df['load_date'])
            first, last = load_dates.min(), load_dates.max()
            summary['Date Range Analysis'] = {
                'Load date range': f"{format_short_date(first.to_pydatetime())} to "
                                   f"{format_short_date(last.to_pydatetime())}",
                'Data span (days)': int(math.ceil((last - first) / pd.Timedelta(days=1))),
            }

        if self.config.trendline_enabled and total:
            summary['Monthly Trendline Analysis'] = self._monthly_trendline()
            summary['Trendline Insights'] = self._trendline_insights()

        if self.config.termination_tracking_enabled:
            summary['ODM - Access Termination Metrics'] = self._odm_metrics()

        if self.validation_results:
            summary['Distribution Validation'] = {
                'Status': self.validation_results.get('status', 'skipped'),
                'Warnings': self.validation_results.get('warnings') or 'none',
                **{label: f"chi2={d['chi2']}, p={d['p_value']}"
                   for label, d in self.validation_results.get('distributions', {}).items()},
            }

        return summary

    def render(self, summary: Optional[Dict[str, Any]] = None) -> str:
        """Render the summary as plain text."""
        summary = summary if summary is not None else self.generate_summary()
        lines = [
            "=" * 70,
            "UAR (USER ACCESS REVIEW) DATA GENERATOR STATISTICS",
            f"Company: {self.config.company_name}",
            "=" * 70,
            "",
        ]

        for section, data in summary.items():
            lines.append(f"--- {section} ---")
            if isinstance(data, dict):
                for key, value in data.items():
                    lines.append(f"  {key}: {value}")
            elif isinstance(data, list):
                lines.extend(f"  {line}" for line in data)
            else:
                lines.append(f"  {data}")
            lines.append("")

        return '\n'.join(lines)


# =============================================================================
# CLI Entry Point
# =============================================================================

def setup_logging(level: str = 'INFO') -> None:
    """Configure logging."""
    log_format = "%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=log_format
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Synthetic UAR (User Access Review) Data Generator",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to a JSON configuration file (merged onto the defaults)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed for reproducible generation"
    )
    parser.add_argument(
        "--records",
        type=int,
        help="Number of UAR records to generate"
    )
    parser.add_argument(
        "--as-of",
        help="Evaluation instant (ISO 8601) used for campaign status and SLA phase"
    )
    parser.add_argument(
        "--format",
        choices=sorted(OUTPUT_EXTENSIONS),
        help="Output format for the record data"
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Output file for the record data (defaults to <output directory>/uar_data.<format>)"
    )
    parser.add_argument(
        "--summary-only",
        action="store_true",
        help="Print statistics without writing record data"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging"
    )

    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> UARConfig:
    """Load config from defaults and file, then apply CLI overrides."""
    config = UARConfig.from_dict(ConfigLoader(args.config).load())

    overrides: Dict[str, Any] = {}
    if args.seed is not None:
        overrides['seed'] = args.seed
    if args.records is not None:
        if args.records < 1:
            raise ValueError(f"--records must be positive, got {args.records}")
        overrides['record_count'] = args.records
    if args.as_of:
        overrides['as_of'] = args.as_of
    if args.format:
        overrides['output_format'] = args.format
    if args.summary_only:
        overrides['summary_only'] = True

    return replace(config, **overrides) if overrides else config


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    log_level = 'DEBUG' if args.verbose else 'INFO'
    setup_logging(log_level)

    try:
        config = load_config(args)
        result = UARDataGenerator(config).run()

        validation_results = DistributionValidator(config, result).validate()
        report = QAReporter(result, config, validation_results).render()

        if config.summary_only:
            print(report)
        else:
            writer = DataWriter(config)
            writer.write_records(result, args.output)
            writer.write_statistics(report)
    except FileNotFoundError as e:
        logging.error(f"File not found: {e}")
        sys.exit(1)
    except ValueError as e:
        logging.error(f"Configuration error: {e}")
        sys.exit(1)
    except Exception as e:
        logging.exception(f"Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
