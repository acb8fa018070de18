"""
Settlement node backends.
"""

from wescore.backends.base import SendTxResult, SettlementBackend, SignatureHashResult
from wescore.backends.jsonrpc import JsonRpcBackend

__all__ = ["JsonRpcBackend", "SendTxResult", "SettlementBackend", "SignatureHashResult"]
