"""
Core modules for Usage Ledger.

This package contains the pricing oracle used to cost usage records.
"""
