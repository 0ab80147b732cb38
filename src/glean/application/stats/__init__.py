# Application Stats Package
from .metrics_calculator import MasteryPolicy, MetricsCalculator, WordMetrics
from .service import StatsAggregator, StatsSummary

__all__ = ["MasteryPolicy", "MetricsCalculator", "WordMetrics", "StatsAggregator", "StatsSummary"]
