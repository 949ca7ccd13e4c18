"""
Format-specific validators for converted output.
"""

from . import csv, xlsx

__all__ = ['csv', 'xlsx']
