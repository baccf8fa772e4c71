"""
Claim reconciliation and validation engine.

Claim lifecycle state machine, coding scrub with auto-fix, modifier
suggestions, ERA auto-posting, underpayment detection and appeal tracking.
"""

__version__ = "1.0.0"
