"""
============================================================================
SiteLedger - Logic Layer
============================================================================

Pure rules with no database access:
- Decimal conversion and rounding (DecimalGateway)
- Cashbook running balances and stock positions (ledger_math)
- Site budget quantity limits and threshold alerts
- Approval state machines for purchase orders and indents
- Document numbering and amount in words

============================================================================
"""
