"""
Keys, keystore, UTXO models and coin selection.
"""

from wescore.wallet.keys import Wallet
from wescore.wallet.keystore import Keystore, KeystoreRecord
from wescore.wallet.models import UTXO, CoinSelection, Outpoint
from wescore.wallet.selection import select_utxos

__all__ = [
    "UTXO",
    "CoinSelection",
    "Keystore",
    "KeystoreRecord",
    "Outpoint",
    "Wallet",
    "select_utxos",
]
