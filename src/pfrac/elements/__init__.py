"""
Elements Module
===============

Linear triangle element for the coupled displacement/phase-field system.
"""

from .p1_element import P1Element

__all__ = ["P1Element"]
