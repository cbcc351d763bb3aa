"""Read-only projections."""

from weighbridge_kernel.selectors.base import BaseSelector
from weighbridge_kernel.selectors.dashboard_selector import DashboardSelector

__all__ = ["BaseSelector", "DashboardSelector"]
