"""
HTTP API for the detection engine.
"""
