# File: utils/__init__.py
"""Pure Python utilities for routinestack.

Submodules:
    - dt_utils: Reference-calendar clock, date parsing, weekday names and
      calendar differences used by the schedule evaluator

Usage:
    from .utils import dt_utils
    from .utils.dt_utils import dt_today_local
"""

from . import dt_utils

__all__ = ["dt_utils"]
