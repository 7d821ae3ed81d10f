"""
Match Integrity: plausibility validation and tamper-evident sealing for
reported match outcomes.
"""

__version__ = "1.0.0"
