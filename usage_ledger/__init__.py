"""
Usage Ledger.

Persists per-request usage telemetry for an API proxy and serves
aggregated views of it.
"""

__version__ = "0.1.0"
