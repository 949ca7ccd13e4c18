"""
Spreadsheet conversion service.

This package converts uploaded .xls/.xlsx spreadsheets through LibreOffice,
a hosted conversion API or an in-process pandas fallback, in the order the
deployment variant configures.
"""

__version__ = "1.0.0"
