"""
Local conversion module for sheetconvert.

This module contains the in-process conversion implementation that doesn't
require LibreOffice or the remote API.
"""

from .factory import LibraryStrategy

__all__ = ['LibraryStrategy']
