"""
Billing Modules.

Thin orchestration layers over the billing kernel.  Each module contains:
- Domain models (frozen dataclasses, the nouns)
- ORM models (persistence)
- Workflows (status state machines)
- A service that owns its transaction boundary

Modules:
- Jobs: job register, square count, row locking
- Pricing: proposal price and its approval state
- Change orders: scope changes and their approval lifecycle
- Invoices: deposit, progress, supplement and final invoices
- Payments: cash received against a job
- Ledger: read-side aggregation and the summary cache
"""
