from typing import Optional

from minefleet.models.domain import Alert, Reading, Severity, ThresholdSet
from .base_rule import ThresholdRule


class FieldLimitRule(ThresholdRule):
    """Compares one reading field against one threshold; absent fields never fire."""

    field_name: str = ""
    threshold_name: str = ""
    label: str = ""

    def evaluate(self, site_id: str, reading: Reading, thresholds: ThresholdSet) -> Optional[Alert]:
        value = getattr(reading, self.field_name)
        if value is None:
            return None

        limit = getattr(thresholds, self.threshold_name)
        if not self._breached(value, limit):
            return None

        return Alert(
            site_id=site_id,
            device_id=reading.device_id,
            type=self.alert_type,
            severity=self.severity,
            value=value,
            message=f"{self.label} {value} breaches limit {limit} on device {reading.device_id}",
            timestamp=reading.timestamp,
        )

    def _breached(self, value: float, limit: float) -> bool:
        return value > limit


class MaxTemperatureRule(FieldLimitRule):
    alert_type = "high_temperature"
    severity = Severity.HIGH
    field_name = "temperature"
    threshold_name = "max_temperature"
    label = "Temperature"


class MinHashRateRule(FieldLimitRule):
    alert_type = "low_hash_rate"
    severity = Severity.MEDIUM
    field_name = "hash_rate"
    threshold_name = "min_hash_rate"
    label = "Hash rate"

    def _breached(self, value: float, limit: float) -> bool:
        return value < limit


class MaxPowerRule(FieldLimitRule):
    alert_type = "high_power"
    severity = Severity.MEDIUM
    field_name = "power_consumption"
    threshold_name = "max_power"
    label = "Power consumption"
