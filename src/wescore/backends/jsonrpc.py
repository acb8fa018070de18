"""
JSON-RPC settlement backend over HTTP.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx
from loguru import logger

from wescore.backends.base import SendTxResult, SettlementBackend, SignatureHashResult
from wescore.config import Settings
from wescore.constants import (
    DIGEST_SIZE,
    RPC_COMPUTE_SIGNATURE_HASH,
    RPC_FINALIZE_TRANSACTION,
    RPC_GET_UTXO,
    RPC_SEND_RAW_TRANSACTION,
)
from wescore.errors import MalformedResponseError, RPCError
from wescore.utils.cache import TTLCache, cached_query
from wescore.utils.retry import with_retry
from wescore.wallet.models import UTXO, Outpoint

DEFAULT_RPC_TIMEOUT = 30.0


def _parse_amount(value: Any) -> int:
    """Decimal string, 0x hex string or JSON integer."""
    if isinstance(value, bool):
        raise TypeError("amount must not be a boolean")
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text, 16) if text[:2] in ("0x", "0X") else int(text)


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


class JsonRpcBackend(SettlementBackend):
    """
    Settlement backend talking JSON-RPC 2.0 to a WES node.

    Only wes_getUTXO is retried on transport errors. Hash, finalize and
    broadcast calls go out exactly once.
    """

    def __init__(
        self,
        rpc_url: str = "http://localhost:8545",
        timeout: float = DEFAULT_RPC_TIMEOUT,
        headers: Mapping[str, str] | None = None,
        max_retries: int = 3,
        retry_initial_delay: float = 1.0,
        retry_max_delay: float = 10.0,
        retry_multiplier: float = 2.0,
        utxo_cache_ttl: float = 0.0,
        cache_max_entries: int = 1000,
        client: httpx.AsyncClient | None = None,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_initial_delay = retry_initial_delay
        self.retry_max_delay = retry_max_delay
        self.retry_multiplier = retry_multiplier
        self.client = client or httpx.AsyncClient(timeout=timeout, headers=dict(headers or {}))
        self._utxo_cache = (
            TTLCache(default_ttl=utxo_cache_ttl, max_size=cache_max_entries)
            if utxo_cache_ttl > 0
            else None
        )
        self._request_id = 0

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> JsonRpcBackend:
        return cls(
            rpc_url=settings.rpc_url,
            timeout=settings.rpc_timeout,
            max_retries=settings.retry_max_attempts,
            retry_initial_delay=settings.retry_initial_delay,
            retry_max_delay=settings.retry_max_delay,
            retry_multiplier=settings.retry_multiplier,
            utxo_cache_ttl=settings.utxo_cache_ttl,
            cache_max_entries=settings.cache_max_entries,
            client=client,
        )

    async def _rpc_call(self, method: str, params: list | None = None) -> Any:
        """
        Make a JSON-RPC call to the node.

        Raises:
            RPCError: The node answered with a JSON-RPC error object
            httpx.HTTPError: On connection/timeout errors
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        try:
            response = await self.client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {method} - {e}")
            raise
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise
        except ValueError as e:
            raise MalformedResponseError(method, f"response is not JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedResponseError(method, "response is not a JSON object")
        if data.get("error"):
            error_info = data["error"]
            if isinstance(error_info, dict):
                raise RPCError(
                    method, error_info.get("code", "unknown"), error_info.get("message", "")
                )
            raise RPCError(method, "unknown", str(error_info))

        return data.get("result")

    async def get_utxos(self, address_base58: str) -> list[UTXO]:
        if self._utxo_cache is None:
            return await self._fetch_utxos(address_base58)
        return await cached_query(
            self._utxo_cache, address_base58, lambda: self._fetch_utxos(address_base58)
        )

    async def _fetch_utxos(self, address_base58: str) -> list[UTXO]:
        result = await with_retry(
            lambda: self._rpc_call(RPC_GET_UTXO, [address_base58]),
            max_retries=self.max_retries,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
            multiplier=self.retry_multiplier,
        )
        if result is None:
            return []
        if not isinstance(result, dict):
            raise MalformedResponseError(RPC_GET_UTXO, "result is not an object")

        utxos = [self._parse_utxo(entry) for entry in result.get("utxos") or []]
        logger.debug(f"Fetched {len(utxos)} UTXOs for {address_base58}")
        return utxos

    @staticmethod
    def _parse_utxo(entry: Any) -> UTXO:
        try:
            outpoint = Outpoint.parse(entry["outpoint"])
            amount = _parse_amount(entry["amount"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(RPC_GET_UTXO, f"invalid UTXO entry {entry!r}: {e}") from e
        if amount < 0:
            raise MalformedResponseError(RPC_GET_UTXO, f"negative UTXO amount {amount}")
        token_id = _first(entry, "tokenID", "token_id", "tokenId") or None
        return UTXO(outpoint=outpoint, amount=amount, token_id=token_id)

    async def compute_signature_hash_from_draft(
        self, draft: dict[str, Any], input_index: int, sighash_type: str
    ) -> SignatureHashResult:
        result = await self._rpc_call(
            RPC_COMPUTE_SIGNATURE_HASH,
            [{"draft": draft, "input_index": input_index, "sighash_type": sighash_type}],
        )
        if not isinstance(result, dict) or not result.get("hash"):
            raise MalformedResponseError(RPC_COMPUTE_SIGNATURE_HASH, "missing hash")

        hash_hex = result["hash"]
        try:
            digest = bytes.fromhex(hash_hex.removeprefix("0x"))
        except (AttributeError, ValueError) as e:
            raise MalformedResponseError(
                RPC_COMPUTE_SIGNATURE_HASH, f"invalid hash {hash_hex!r}"
            ) from e
        if len(digest) != DIGEST_SIZE:
            raise MalformedResponseError(
                RPC_COMPUTE_SIGNATURE_HASH, f"hash is {len(digest)} bytes, expected {DIGEST_SIZE}"
            )

        return SignatureHashResult(
            digest=digest, unsigned_tx=_first(result, "unsignedTx", "unsigned_tx")
        )

    async def finalize_transaction_from_draft(
        self,
        draft: dict[str, Any],
        unsigned_tx: str | None,
        input_index: int,
        sighash_type: str,
        pubkey: str,
        signature: str,
    ) -> str:
        params: dict[str, Any] = {
            "draft": draft,
            "input_index": input_index,
            "sighash_type": sighash_type,
            "pubkey": pubkey,
            "signature": signature,
        }
        if unsigned_tx is not None:
            params["unsignedTx"] = unsigned_tx

        result = await self._rpc_call(RPC_FINALIZE_TRANSACTION, [params])
        tx_hex = _first(result, "tx", "txHex") if isinstance(result, dict) else None
        if not isinstance(tx_hex, str) or not tx_hex:
            raise MalformedResponseError(RPC_FINALIZE_TRANSACTION, "missing tx")
        return tx_hex

    async def send_raw_transaction(self, tx_hex: str) -> SendTxResult:
        result = await self._rpc_call(RPC_SEND_RAW_TRANSACTION, [tx_hex])
        if not isinstance(result, dict) or "accepted" not in result:
            raise MalformedResponseError(RPC_SEND_RAW_TRANSACTION, "missing accepted flag")

        sent = SendTxResult(
            accepted=bool(result["accepted"]),
            tx_hash=_first(result, "txHash", "tx_hash"),
            reason=result.get("reason"),
        )
        if sent.accepted and self._utxo_cache is not None:
            # Spent inputs are no longer valid snapshots
            self._utxo_cache.clear()
        return sent

    async def close(self) -> None:
        await self.client.aclose()
