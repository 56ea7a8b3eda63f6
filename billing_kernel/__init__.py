"""
Billing Kernel

Shared infrastructure for the job billing ledger:
- Money in integer cents with explicit boundary conversion
- Typed exceptions with machine-readable codes
- Structured JSON logging
- Locked-counter sequences and a per-job activity trail
- ORM-level immutability for billed and recorded money
"""

__version__ = "0.1.0"
