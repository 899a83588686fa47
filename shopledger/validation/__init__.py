"""Integrity validation and automated remediation."""

from shopledger.validation.integrity import (
    IntegrityValidator,
    check_integrity,
    find_total_mismatches,
)
from shopledger.validation.remediation import IssueRemediator

__all__ = [
    "IntegrityValidator",
    "IssueRemediator",
    "check_integrity",
    "find_total_mismatches",
]
