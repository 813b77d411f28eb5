"""Terminal presentation helpers."""

from .overview import OverviewUI

__all__ = ["OverviewUI"]
