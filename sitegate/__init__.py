"""SiteGate approval workflow engine.

Routes construction-project requests (expenses, purchases, payroll
adjustments, ...) through an approval chain derived from the organizational
hierarchy and per-role financial thresholds.
"""

__version__ = "0.3.0"
