from typing import Dict, Iterable, List, Optional, Type

from .base_rule import ThresholdRule
from .threshold_rules import MaxPowerRule, MaxTemperatureRule, MinHashRateRule


class ThresholdRuleFactory:
    """Factory for creating threshold rule instances"""

    _rule_registry: Dict[str, Type[ThresholdRule]] = {
        "high_temperature": MaxTemperatureRule,
        "low_hash_rate": MinHashRateRule,
        "high_power": MaxPowerRule,
    }

    @classmethod
    def create_rules(cls, alert_types: Optional[Iterable[str]] = None) -> List[ThresholdRule]:
        """Create rule instances; every registered rule when no names are given"""
        names = list(alert_types) if alert_types is not None else list(cls._rule_registry)
        rules = []
        for name in names:
            rule_class = cls._rule_registry.get(name)
            if rule_class is None:
                raise ValueError(f"Unknown threshold rule: {name}")
            rules.append(rule_class())
        return rules
