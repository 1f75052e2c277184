"""Payments and expenditures."""

from .ledger import ClientBalance, FinanceService

__all__ = ["ClientBalance", "FinanceService"]
