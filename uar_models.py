"""Data classes and derived-field rules for UAR records."""

import hashlib
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from org_hierarchy import OrgChain

# Campaign types
LEAVER = 'leaver'
QUARTERLY = 'quarterly'
SPECIAL = 'special'
CAMPAIGN_TYPES = (LEAVER, QUARTERLY, SPECIAL)

# Campaign statuses
STAGED = 'STAGED'
ACTIVE = 'ACTIVE'
COMPLETED = 'COMPLETED'

# Certification statuses
CLOSED = 'CLOSED'
NEW = 'NEW'
IN_PROGRESS = 'IN PROGRESS'

# Phase by SLA
COMPLETED_WITHIN_SLA = 'Completed within SLA'
COMPLETED_PAST_SLA = 'Completed past SLA'
OPEN_WITHIN_SLA = 'Open within SLA'
OPEN_PAST_SLA = 'Open Past SLA'

COMPLIANT = 'Compliant'
NOT_COMPLIANT = 'Not Compliant'

# Reviewer types
ADMIN_REVIEW = 'admin'
REASSIGNMENT = 'reassignment'
MANAGER_REVIEW = 'manager'
SELF_REVIEW = 'self'


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def phase_by_sla(status: str, due: datetime, end: Optional[datetime], as_of: datetime) -> str:
    """Closed certifications compare their end date to the due date, open ones compare as_of."""
    if status == CLOSED:
        if end is None or end <= due:
            return COMPLETED_WITHIN_SLA
        return COMPLETED_PAST_SLA
    return OPEN_WITHIN_SLA if as_of <= due else OPEN_PAST_SLA


def compliance_for_phase(phase: str) -> str:
    return NOT_COMPLIANT if phase == OPEN_PAST_SLA else COMPLIANT


def unique_key(campaign_name: str, certification_name: str, certification_id: str,
               campaign_id: str, employee_id: str, employee_name: str, employee_email: str) -> str:
    """Content fingerprint used as the record's unique key."""
    payload = (f"{campaign_name}{certification_name}{certification_id}{campaign_id}"
               f"{employee_id}{employee_name}{employee_email}")
    return hashlib.sha256(payload.encode('utf-8')).hexdigest().upper()


@dataclass(frozen=True)
class Employee:
    """A synthesized employee with a fixed org-chain snapshot."""
    employee_id: str
    first_name: str
    last_name: str
    name: str
    email: str
    username: str
    job_title: str
    manager_name: str
    manager_email: str
    manager_employee_id: str
    org_chain: OrgChain


@dataclass(frozen=True)
class Campaign:
    """An access review campaign."""
    campaign_id: str
    name: str
    campaign_type: str
    created_at: datetime
    loaded_at: datetime
    start: datetime
    end: datetime
    status: str

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE


@dataclass
class DeprovisionInfo:
    """Termination request and access removal timing for one record."""
    requested_at: datetime
    minutes_to_deprovision: int
    completed_at: datetime
    compliant: bool


@dataclass
class UARRecord:
    """One certification within a campaign, tied to one employee."""
    unique_key: str
    campaign: Campaign
    employee: Employee
    certification_id: str
    certification_name: str
    certification_status: str
    certification_start: datetime
    certification_end: Optional[datetime]
    certification_due: datetime
    certification_load: datetime
    reviewer_name: str
    reviewer_email: str
    reviewer_type: str
    phase_by_sla: str
    compliance_status: str
    uar_source: str
    tl_date: datetime
    total_certifications: int
    completed_certifications: int
    deprovision: Optional[DeprovisionInfo] = None
    is_current: bool = False

    @property
    def is_compliant(self) -> bool:
        return self.compliance_status == COMPLIANT

    @property
    def is_closed(self) -> bool:
        return self.certification_status == CLOSED

    @property
    def has_deprovision(self) -> bool:
        return self.deprovision is not None

    @property
    def deprovision_compliant(self) -> Optional[bool]:
        return self.deprovision.compliant if self.deprovision is not None else None

    def mark_compliant(self) -> None:
        self.phase_by_sla = COMPLETED_WITHIN_SLA if self.is_closed else OPEN_WITHIN_SLA
        self.compliance_status = COMPLIANT

    def mark_non_compliant(self) -> bool:
        """Flip an open certification to past SLA. Closed certifications are left untouched."""
        if self.is_closed:
            return False
        self.phase_by_sla = OPEN_PAST_SLA
        self.compliance_status = NOT_COMPLIANT
        return True

    def to_dict(self) -> dict:
        """Raw field set keyed the way the upstream UAR export names its columns."""
        employee = self.employee
        chain = employee.org_chain
        deprov = self.deprovision
        return {
            'UNIQUE_ID': self.unique_key,
            'CAMPAIGN_ID': self.campaign.campaign_id,
            'CAMPAIGN_NAME': self.campaign.name,
            'CAMPAIGN_TYPE': self.campaign.campaign_type,
            'CAMPAIGN_CREATED_DATETIME': self.campaign.created_at.isoformat(),
            'CAMPAIGN_START_DATETIME': self.campaign.start.isoformat(),
            'CAMPAIGN_END_DATETIME': self.campaign.end.isoformat(),
            'CAMPAIGN_STATUS': self.campaign.status,
            'CAMPAIGN_LOAD_DATE': self.campaign.loaded_at.isoformat(),
            'IS_ACTIVE_CAMPAIGN': self.campaign.is_active,
            'UAR_SOURCE': self.uar_source,
            'CERTIFICATION_ID': self.certification_id,
            'CERTIFICATION_NAME': self.certification_name,
            'CERTIFICATION_START_DATETIME': self.certification_start.isoformat(),
            'CERTIFICATION_END_DATETIME': self.certification_end.isoformat() if self.certification_end else '',
            'CERTIFICATION_DUE_DATETIME': self.certification_due.isoformat(),
            'CERTIFICATION_LOAD_DATE': self.certification_load.isoformat(),
            'TOTAL_CERTIFICATIONS': self.total_certifications,
            'COMPLETED_CERTIFICATIONS': self.completed_certifications,
            'CERTIFICATION_COMPLETED': self.is_closed,
            'PHASE_BY_SLA': self.phase_by_sla,
            'REVIEWER_NAME': self.reviewer_name,
            'REVIEWER_MAIL_ID': self.reviewer_email,
            'REVIEWER_TYPE': self.reviewer_type,
            'CERTIFICATION_STATUS': self.certification_status,
            'COMPLIANCE_STATUS': self.compliance_status,
            'IS_CURRENT': self.is_current,
            'TL_DATE': self.tl_date.strftime('%m/%d/%Y'),
            'EMPLOYEE_ID': employee.employee_id,
            'EMPLOYEE_NAME': employee.name,
            'EMPLOYEE_EMAIL_ADDRESS': employee.email,
            'EMPLOYEE_JOB_TITLE': employee.job_title,
            'MANAGER_FULL_NAME': employee.manager_name,
            'LEVEL_1': chain.level_1,
            'LEVEL_2': chain.level_2,
            'LEVEL_3': chain.level_3,
            'LEVEL_4': chain.level_4,
            'LEVEL_5': chain.level_5,
            'LEVEL_6': chain.level_6,
            'MANAGER_EMAIL_ID': employee.manager_email,
            'MANAGER_EMPLOYEE_ID': employee.manager_employee_id,
            'TERMINATION_REQUEST_DATETIME': deprov.requested_at.isoformat() if deprov else '',
            'DEPROVISION_COMPLETE_DATETIME': deprov.completed_at.isoformat() if deprov else '',
            'MINUTES_TO_DEPROVISION': deprov.minutes_to_deprovision if deprov else '',
            'DEPROVISION_COMPLIANCE': self.deprovision_compliant,
        }
