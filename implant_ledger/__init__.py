"""Implant ledger: reconciliation and correction chains over an append-only ledger."""

__version__ = "0.1.0"
