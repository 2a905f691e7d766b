"""Per-tenant daily usage quota tracking."""

from tenant_access.usage.ledger import UsageLedger, UsageLedgerConfig

__all__ = ["UsageLedger", "UsageLedgerConfig"]
