"""
Utility modules for PassPilot.

This package contains pure helpers shared by the models, routes and
background jobs:
- timestamps: UTC normalization and parsing
- durations: pass duration calculation and report fallbacks
- trial_status: free trial banner evaluation
- settings: environment variable parsing
"""

from passpilot.utils.timestamps import format_utc_iso, parse_timestamp, utc_now
from passpilot.utils.durations import compute_duration, resolve_duration, export_duration

__all__ = [
    'format_utc_iso',
    'parse_timestamp',
    'utc_now',
    'compute_duration',
    'resolve_duration',
    'export_duration',
]
