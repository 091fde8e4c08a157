"""
Approval Kernel

A multi-level approval workflow engine for monetary requests:
- Tenant-scoped approval policies with a global fallback chain
- Amount-matched, contiguous effective chains
- Deterministic approver resolution against a directory
- A locked, versioned approval state machine
- Append-only approval history
"""

__version__ = "0.1.0"
