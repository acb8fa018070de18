"""
Wallet service tying a key pair to a settlement backend.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from loguru import logger

from wescore.address import address_to_base58, normalize_address
from wescore.backends.base import SendTxResult, SettlementBackend
from wescore.constants import SIGHASH_ALL
from wescore.locking import LockingCondition
from wescore.signing import SigningCoordinator
from wescore.tx_builder import ContractLookup, DraftBuilder, FeePolicy
from wescore.utils.batch import BatchResult, batch_query
from wescore.wallet.keys import Wallet
from wescore.wallet.models import UTXO
from wescore.wallet.selection import filter_utxos


class WalletService:
    """
    Balance queries and transfers for a single wallet.

    Concurrent transfers from the same wallet may pick the same UTXOs; the
    loser is rejected at broadcast. Callers that need parallel transfers must
    serialize them.
    """

    def __init__(
        self,
        wallet: Wallet,
        backend: SettlementBackend,
        fee_policy: FeePolicy | None = None,
        batch_size: int = 50,
        batch_concurrency: int = 5,
        sighash_type: str = SIGHASH_ALL,
        contract_lookup: ContractLookup | None = None,
    ):
        self.wallet = wallet
        self.backend = backend
        self.builder = DraftBuilder(backend, fee_policy, contract_lookup)
        self.coordinator = SigningCoordinator(backend)
        self.batch_size = batch_size
        self.batch_concurrency = batch_concurrency
        self.sighash_type = sighash_type

        logger.info(f"Initialized wallet service for {wallet.address_hex}")

    async def get_utxos(self, token_id: str | None = None) -> list[UTXO]:
        utxos = await self.backend.get_utxos(self.wallet.address_base58)
        return filter_utxos(utxos, token_id)

    async def get_balance(self, token_id: str | None = None) -> int:
        return sum(u.amount for u in await self.get_utxos(token_id))

    async def get_balances(
        self,
        addresses: Sequence[bytes | str],
        token_id: str | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> BatchResult[int]:
        """Balances of many addresses; failures are reported per address."""

        async def fetch(address: bytes | str) -> int:
            utxos = await self.backend.get_utxos(address_to_base58(normalize_address(address)))
            return sum(u.amount for u in filter_utxos(utxos, token_id))

        return await batch_query(
            list(addresses),
            fetch,
            batch_size=self.batch_size,
            concurrency=self.batch_concurrency,
            on_progress=on_progress,
        )

    async def transfer(
        self, to_address: bytes | str, amount: int, token_id: str | None = None
    ) -> SendTxResult:
        draft = await self.builder.build_transfer(self.wallet.address, to_address, amount, token_id)
        return await self.coordinator.sign_and_submit(
            draft, self.wallet, sighash_type=self.sighash_type
        )

    async def transfer_with_lock(
        self,
        beneficiary: bytes | str,
        amount: int,
        lock: LockingCondition,
        token_id: str | None = None,
    ) -> SendTxResult:
        draft = await self.builder.build_with_lock(
            self.wallet.address, beneficiary, amount, token_id, lock
        )
        return await self.coordinator.sign_and_submit(
            draft, self.wallet, sighash_type=self.sighash_type
        )

    async def close(self) -> None:
        await self.backend.close()
