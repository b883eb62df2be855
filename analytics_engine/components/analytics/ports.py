"""
Analytics component port definitions.
"""

from __future__ import annotations

from analytics_engine.core.ports.records import RecordSourcePort

__all__ = ["RecordSourcePort"]
