from abc import ABC, abstractmethod
from typing import Optional

from minefleet.models.domain import Alert, Reading, Severity, ThresholdSet


class ThresholdRule(ABC):
    """Abstract base class for all reading threshold rules"""

    alert_type: str = ""
    severity: Severity = Severity.MEDIUM

    @abstractmethod
    def evaluate(self, site_id: str, reading: Reading, thresholds: ThresholdSet) -> Optional[Alert]:
        """Return an alert when the reading breaches its threshold, else None"""
        pass
