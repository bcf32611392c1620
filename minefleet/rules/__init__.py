"""Threshold rules and factory."""

from .base_rule import ThresholdRule
from .threshold_rules import FieldLimitRule, MaxTemperatureRule, MinHashRateRule, MaxPowerRule
from .rule_factory import ThresholdRuleFactory

__all__ = [
    'ThresholdRule',
    'FieldLimitRule',
    'MaxTemperatureRule',
    'MinHashRateRule',
    'MaxPowerRule',
    'ThresholdRuleFactory'
]
