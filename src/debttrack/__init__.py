"""
debttrack - credit card ledger extraction from bank SMS.

Turns free-form bank notification messages into accounts, transactions,
statements, reminders and rewards for debt tracking.
"""

__version__ = "0.1.0"
