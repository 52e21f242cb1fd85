"""
Flight delay cover.

Prices, issues and settles short-lived parametric delay policies. The rating
and the delay status of a journey come from two asynchronous oracle providers;
a periodic keeper drives the delayed status checks.
"""

__version__ = "1.0.0"
