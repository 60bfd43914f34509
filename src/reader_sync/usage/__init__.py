"""Provider usage ledger shared by every outbound provider call."""
