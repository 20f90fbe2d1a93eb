"""
Export Job Engine

Durable multi-step export jobs with progress tracking, package retention,
cancellation and resumable downloads.
"""

__version__ = "1.0.0"
