"""Debt Collection Agent

This service automates debt collection outreach:
- Tracks debtors and the debts they owe
- Sends scheduled reminders with an escalating tone
- Classifies debtor replies and answers them
- Escalates debts that normal reminder cycles failed to resolve
"""

__version__ = "1.0.0"
