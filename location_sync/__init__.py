"""Bulk location reconciliation: CSV -> validated records -> remote catalog PATCH."""

__version__ = "0.1.0"
