"""DIY projects API: a materials catalog and a project ledger that reserves stock from it."""

__version__ = "0.1.0"
