"""
navpool: epoch-settled pooled fund accounting.
"""

__version__ = "0.1.0"
