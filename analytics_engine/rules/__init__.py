from analytics_engine.rules.loader import load_rules
from analytics_engine.rules.models import AnalyticsRules, Rules

__all__ = ["AnalyticsRules", "Rules", "load_rules"]
