"""
Billing Module

Prepaid ticket accounting for generation endpoints:
- tickets: ledger, atomic procedures, cost calculation, daily bonus
- settlement: job outcome classification and charge/refund decisions
- domain: usage ids and result types
- endpoints: balance and bonus routes
"""
