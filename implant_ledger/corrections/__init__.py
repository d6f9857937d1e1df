from implant_ledger.corrections.service import CorrectionManager

__all__ = ["CorrectionManager"]
