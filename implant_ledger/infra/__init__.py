"""Infrastructure helpers for the implant ledger.

This package contains low-level concerns shared by the ledger client and the
services:
- Retry/backoff for outbound ledger reads
- PHI-safe log formatting
"""
