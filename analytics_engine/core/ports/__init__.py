# pageview-analytics-engine - Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from analytics_engine.core.ports.records import RecordSourcePort

__all__ = [
    "RecordSourcePort",
]
