"""
Persistence Layer

File storage for phase artifacts and reports.
"""

from .storage import DEFAULT_OUTPUT_DIR, OutputWriter

__all__ = ["DEFAULT_OUTPUT_DIR", "OutputWriter"]
