"""
Shop Ledger - Source Package

Moves a shop's flat product records onto bills, checks the result,
repairs what can be repaired automatically, and rolls the whole
migration back on request.

DESIGN PRINCIPLES:
1. One failed item never aborts a run
2. Fail early, fail visibly
3. Findings are reported, never silently corrected
4. Every run must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Shop Ledger Team"
