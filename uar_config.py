"""
uar_config.py

Configuration for the UAR data generator.

Configuration is authored as a nested JSON document (see DEFAULT_CONFIG for
every recognised option). ConfigLoader reads and shape-checks the document;
UARConfig is the immutable value handed to every generator component.
"""

import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

CERT_STATUSES = ('CLOSED', 'NEW', 'IN PROGRESS')
SPEED_BUCKETS = ('fast', 'typical', 'slow', 'very_slow')

DEFAULT_CONFIG: Dict[str, Any] = {
    "global": {
        "seed": None,
        "record_count": 30000,
        "employee_count": 5000,
        "campaign_count": 40,
        "date_range_days": 360,
        "compliance_rate": 0.93,
        "as_of": None,
        "company_name": "TechCorp Industries",
        "email_domain": "@techcorp.com",
        "admin_email": "security_infosec_data@techcorp.com",
        "admin_reviewer": "techcorp_admin",
    },
    "campaigns": {
        "leaver_pct": 0.35,
        "quarterly_pct": 0.45,
        "special_pct": 0.20,
    },
    "certifications": {
        "status_distribution": {
            "CLOSED": 0.75,
            "NEW": 0.15,
            "IN PROGRESS": 0.10,
        },
    },
    "reviewers": {
        "admin_pct": 0.15,
        "reassignment_pct": 0.08,
        "manager_pct": 0.15,
    },
    "sla": {
        "min_days": 14,
        "max_days": 45,
        "typical_days": 30,
        "leaver_days": 7,
        "special_days": 21,
        "quarterly_days": 35,
    },
    "termination": {
        "enabled": True,
        "min_minutes": 30,
        "max_minutes": 2880,
        "speed_distribution": {
            "fast": 0.20,
            "typical": 0.60,
            "slow": 0.15,
            "very_slow": 0.05,
        },
        "sla_minutes": 1440,
        "compliance_rate": 0.91,
        "special_campaign_probability": 0.30,
    },
    "trendline": {
        "enabled": True,
        "peak_month": 2,
        "low_month": 11,
        "compliance_variance": 0.15,
        "deprovision_impact": 0.30,
        # Jan..Dec multipliers; > 1.0 means higher compliance
        "monthly_compliance_weights": [
            1.08, 1.12, 1.15, 1.10, 1.02, 0.95,
            0.88, 0.92, 1.00, 1.05, 0.98, 0.82,
        ],
        # Jan..Dec multipliers; > 1.0 means slower deprovisioning
        "monthly_deprovision_weights": [
            0.85, 0.80, 0.75, 0.90, 1.00, 1.15,
            1.35, 1.25, 1.05, 0.95, 1.20, 1.45,
        ],
    },
    "output": {
        "format": "csv",
        "directory": "./out",
        "summary_only": False,
    },
}


def deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of base with overrides merged in, recursing into nested dicts."""
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# =============================================================================
# Configuration Loader
# =============================================================================

class ConfigLoader:
    """Loads a JSON configuration file and merges it onto DEFAULT_CONFIG."""

    REQUIRED_SECTIONS = ('global', 'campaigns', 'certifications', 'reviewers',
                         'sla', 'termination', 'trendline')

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else None
        self.config: Dict[str, Any] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def load(self) -> Dict[str, Any]:
        """Load, flatten and validate the configuration."""
        file_config: Dict[str, Any] = {}
        if self.config_path is not None:
            self.logger.info(f"Loading configuration from {self.config_path}")
            if not self.config_path.exists():
                raise FileNotFoundError(f"Config file not found: {self.config_path}")

            with open(self.config_path, 'r', encoding='utf-8') as f:
                file_config = json.load(f)

            if not isinstance(file_config, dict):
                raise ValueError("Configuration root must be a JSON object")
            file_config = self._flatten_recursive(file_config)

        self.config = deep_merge(DEFAULT_CONFIG, file_config)
        self.validate(self.config)
        return self.config

    def _flatten_recursive(self, obj: Any) -> Any:
        """Unwrap {"value": ..., "_comment": ...} entries and drop comment keys."""
        if isinstance(obj, dict):
            keys = set(obj.keys())
            if keys == {'value'} or keys == {'value', '_comment'}:
                return self._flatten_recursive(obj['value'])

            return {k: self._flatten_recursive(v) for k, v in obj.items()
                    if not k.startswith('_comment')}

        elif isinstance(obj, list):
            return [self._flatten_recursive(item) for item in obj]

        return obj

    def validate(self, config: Dict[str, Any]) -> None:
        """Basic shape checks only; distributions are not required to sum to 1."""
        for section in self.REQUIRED_SECTIONS:
            if not isinstance(config.get(section), dict):
                raise ValueError(f"Missing required config section: {section}")

        for key in ('record_count', 'employee_count', 'campaign_count', 'date_range_days'):
            value = config['global'].get(key)
            if value is None:
                raise ValueError(f"global.{key} must be set in the configuration")
            if int(value) < 1:
                raise ValueError(f"global.{key} must be a positive integer, got {value}")

        for key in ('compliance_rate',):
            if config['global'].get(key) is None:
                raise ValueError(f"global.{key} must be set in the configuration")

        status_dist = config['certifications'].get('status_distribution')
        if not isinstance(status_dist, dict) or set(CERT_STATUSES) - set(status_dist):
            raise ValueError(f"certifications.status_distribution must define {list(CERT_STATUSES)}")

        speed_dist = config['termination'].get('speed_distribution')
        if not isinstance(speed_dist, dict) or set(SPEED_BUCKETS) - set(speed_dist):
            raise ValueError(f"termination.speed_distribution must define {list(SPEED_BUCKETS)}")

        self.logger.debug("Configuration shape checks passed")


# =============================================================================
# Immutable configuration value
# =============================================================================

def _weights(value: Any) -> Optional[Tuple[float, ...]]:
    if value is None:
        return None
    return tuple(float(w) for w in value)


@dataclass(frozen=True)
class UARConfig:
    """Immutable generator configuration passed to every component."""
    # Volume and window
    record_count: int = 30000
    employee_count: int = 5000
    campaign_count: int = 40
    date_range_days: int = 360
    compliance_rate: float = 0.93
    seed: Optional[int] = None
    as_of: Optional[str] = None

    # Company identity
    company_name: str = "TechCorp Industries"
    email_domain: str = "@techcorp.com"
    admin_email: str = "security_infosec_data@techcorp.com"
    admin_reviewer: str = "techcorp_admin"

    # Campaign mix (externally guaranteed to sum to 1)
    leaver_pct: float = 0.35
    quarterly_pct: float = 0.45
    special_pct: float = 0.20

    # Certification status distribution
    status_closed_pct: float = 0.75
    status_new_pct: float = 0.15
    status_in_progress_pct: float = 0.10

    # Reviewer assignment
    admin_reviewer_pct: float = 0.15
    reassignment_pct: float = 0.08
    manager_review_pct: float = 0.15

    # Certification SLA (days)
    sla_min_days: int = 14
    sla_max_days: int = 45
    sla_typical_days: int = 30
    leaver_sla_days: int = 7
    special_sla_days: int = 21
    quarterly_sla_days: int = 35

    # Termination tracking (minutes)
    termination_tracking_enabled: bool = True
    min_deprovision_minutes: int = 30
    max_deprovision_minutes: int = 2880
    fast_deprovision_pct: float = 0.20
    typical_deprovision_pct: float = 0.60
    slow_deprovision_pct: float = 0.15
    very_slow_deprovision_pct: float = 0.05
    deprovision_sla_minutes: int = 1440
    deprovision_compliance_rate: float = 0.91
    special_termination_probability: float = 0.30

    # Seasonal trendlines (months are 0-indexed)
    trendline_enabled: bool = True
    peak_compliance_month: int = 2
    low_compliance_month: int = 11
    compliance_variance: float = 0.15
    deprovision_seasonal_impact: float = 0.30
    monthly_compliance_weights: Optional[Tuple[float, ...]] = None
    monthly_deprovision_weights: Optional[Tuple[float, ...]] = None

    # Output collaborator
    output_format: str = "csv"
    output_directory: str = "./out"
    summary_only: bool = False

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "UARConfig":
        """Build from a nested configuration document (missing keys take DEFAULT_CONFIG values)."""
        cfg = deep_merge(DEFAULT_CONFIG, config)
        g = cfg['global']
        campaigns = cfg['campaigns']
        status = cfg['certifications']['status_distribution']
        reviewers = cfg['reviewers']
        sla = cfg['sla']
        term = cfg['termination']
        speed = term['speed_distribution']
        trend = cfg['trendline']
        output = cfg.get('output', {})

        seed = g.get('seed')
        return cls(
            record_count=int(g['record_count']),
            employee_count=int(g['employee_count']),
            campaign_count=int(g['campaign_count']),
            date_range_days=int(g['date_range_days']),
            compliance_rate=float(g['compliance_rate']),
            seed=int(seed) if seed is not None else None,
            as_of=g.get('as_of'),
            company_name=g['company_name'],
            email_domain=g['email_domain'],
            admin_email=g['admin_email'],
            admin_reviewer=g['admin_reviewer'],
            leaver_pct=float(campaigns['leaver_pct']),
            quarterly_pct=float(campaigns['quarterly_pct']),
            special_pct=float(campaigns['special_pct']),
            status_closed_pct=float(status['CLOSED']),
            status_new_pct=float(status['NEW']),
            status_in_progress_pct=float(status['IN PROGRESS']),
            admin_reviewer_pct=float(reviewers['admin_pct']),
            reassignment_pct=float(reviewers['reassignment_pct']),
            manager_review_pct=float(reviewers['manager_pct']),
            sla_min_days=int(sla['min_days']),
            sla_max_days=int(sla['max_days']),
            sla_typical_days=int(sla['typical_days']),
            leaver_sla_days=int(sla['leaver_days']),
            special_sla_days=int(sla['special_days']),
            quarterly_sla_days=int(sla['quarterly_days']),
            termination_tracking_enabled=bool(term['enabled']),
            min_deprovision_minutes=int(term['min_minutes']),
            max_deprovision_minutes=int(term['max_minutes']),
            fast_deprovision_pct=float(speed['fast']),
            typical_deprovision_pct=float(speed['typical']),
            slow_deprovision_pct=float(speed['slow']),
            very_slow_deprovision_pct=float(speed['very_slow']),
            deprovision_sla_minutes=int(term['sla_minutes']),
            deprovision_compliance_rate=float(term['compliance_rate']),
            special_termination_probability=float(term['special_campaign_probability']),
            trendline_enabled=bool(trend['enabled']),
            peak_compliance_month=int(trend['peak_month']),
            low_compliance_month=int(trend['low_month']),
            compliance_variance=float(trend['compliance_variance']),
            deprovision_seasonal_impact=float(trend['deprovision_impact']),
            monthly_compliance_weights=_weights(trend.get('monthly_compliance_weights')),
            monthly_deprovision_weights=_weights(trend.get('monthly_deprovision_weights')),
            output_format=str(output.get('format', 'csv')).lower(),
            output_directory=str(output.get('directory', './out')),
            summary_only=bool(output.get('summary_only', False)),
        )

    @classmethod
    def default(cls) -> "UARConfig":
        return cls.from_dict({})
