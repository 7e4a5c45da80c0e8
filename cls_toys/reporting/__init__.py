"""
Reporting modules for CLs scan outputs.
"""

from . import write_report
from . import plot_cls

__all__ = ["write_report", "plot_cls"]
