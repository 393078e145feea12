"""
Capture Trust - multi-signal confidence aggregation for photo provenance.
"""

__version__ = "1.0.0"
