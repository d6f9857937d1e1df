from implant_ledger.audit.chain import AuditChain

__all__ = ["AuditChain"]
