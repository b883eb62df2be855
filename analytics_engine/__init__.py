"""
Pageview analytics engine.

Classifies, aggregates and summarises anonymised pageview records for a
web-analytics dashboard.
"""

__version__ = "0.1.0"
