"""Push notifications for shared-expense ledger changes."""
