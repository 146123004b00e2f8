# api/__init__.py
from api.ledger_api import LedgerApiServer, start_api_server

__all__ = ['LedgerApiServer', 'start_api_server']
