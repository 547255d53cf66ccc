"""
HydroCred mock credit ledger.

A persisted simulation of the green-hydrogen credit token registry
(issue / transfer / retire) used to demo the dashboards without a chain.
"""

__version__ = "0.1.0"
