"""
Transport Tracker Dashboard Package
"""

from .aggregations import (
    sessions_frame,
    get_driver_performance,
    get_daily_overview,
    export_sessions_csv,
)

__all__ = [
    'sessions_frame',
    'get_driver_performance',
    'get_daily_overview',
    'export_sessions_csv',
]
