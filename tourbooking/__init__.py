"""
Tour availability and booking engine for school enrollment offices.
"""

__version__ = "1.0.0"
