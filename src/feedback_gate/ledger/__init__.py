"""
Credit ledger for the feedback gate - storage and workflow.
"""

from .ledger_storage import LedgerStorage, CreditEntry, OpenRequest
from .credit_workflow import CreditWorkflow, ChatGateway

__all__ = ['LedgerStorage', 'CreditEntry', 'OpenRequest', 'CreditWorkflow', 'ChatGateway']
