import asyncio
import itertools
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..config import settings
from ..core.retry import RetryStrategy
from ..errors import FetchError
from ..services.address import topic_for_address
from ..services.tokens import format_units, is_lp_token
from ..types.portfolio import Token
from .base import BalanceSource
from .scanner import native_token

logger = logging.getLogger(__name__)

TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

BALANCE_OF_SELECTOR = "0x70a08231"
DECIMALS_SELECTOR = "0x313ce567"
SYMBOL_SELECTOR = "0x95d89b41"
NAME_SELECTOR = "0x06fdde03"
STAKE_COUNT_SELECTOR = "0x33060d90"


class RPCProvider(BalanceSource):
    """PulseChain JSON-RPC client.

    Serves the swap detector and staking estimate, and doubles as a direct
    balance source that reads the native balance plus a fixed set of token
    contracts.
    """

    name = "rpc"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        rpc_url: Optional[str] = None,
        retry: Optional[RetryStrategy] = None,
        tracked_tokens: Optional[Iterable[str]] = None,
    ):
        super().__init__(client)
        self.rpc_url = rpc_url or settings.rpc_url
        self.timeout_s = settings.request_timeout_seconds
        self.retry = retry or RetryStrategy(logger=logger)
        self.tracked_tokens = [t.lower() for t in (tracked_tokens or settings.known_missing_tokens)]
        self._ids = itertools.count(1)

    async def health_check(self) -> Dict[str, Any]:
        try:
            block = await self.block_number()
            return {"status": "healthy", "block": block}
        except FetchError as e:
            return {"status": "error", "reason": str(e)}

    async def call_rpc(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": next(self._ids)}

        async def send() -> Any:
            data = await self._request_json(
                "POST",
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            if isinstance(data, dict) and data.get("error"):
                raise FetchError(f"RPC error in {method}: {data['error']}", provider=self.name)
            return data.get("result") if isinstance(data, dict) else None

        return await self.retry.execute(send)

    # ----- chain reads -----

    async def block_number(self) -> int:
        return int(await self.call_rpc("eth_blockNumber", []), 16)

    async def get_logs(
        self,
        from_block: int,
        to_block: int,
        topics: Optional[List[Any]] = None,
    ) -> List[Dict[str, Any]]:
        query = {
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
            "topics": topics or [TRANSFER_TOPIC],
        }
        return await self.call_rpc("eth_getLogs", [query]) or []

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.call_rpc("eth_getTransactionReceipt", [tx_hash])

    async def get_block(self, block_number: int | str) -> Optional[Dict[str, Any]]:
        tag = hex(block_number) if isinstance(block_number, int) else block_number
        return await self.call_rpc("eth_getBlockByNumber", [tag, False])

    async def get_balance(self, address: str) -> int:
        return int(await self.call_rpc("eth_getBalance", [address, "latest"]), 16)

    async def eth_call(self, to: str, data: str) -> str:
        return await self.call_rpc("eth_call", [{"to": to, "data": data}, "latest"]) or "0x"

    # ----- contract helpers -----

    async def erc20_balance(self, token_address: str, owner: str) -> int:
        data = BALANCE_OF_SELECTOR + topic_for_address(owner)[2:]
        return decode_uint(await self.eth_call(token_address, data))

    async def erc20_metadata(self, token_address: str) -> Dict[str, Any]:
        decimals_raw, symbol_raw, name_raw = await asyncio.gather(
            self.eth_call(token_address, DECIMALS_SELECTOR),
            self.eth_call(token_address, SYMBOL_SELECTOR),
            self.eth_call(token_address, NAME_SELECTOR),
        )
        return {
            "decimals": decode_uint(decimals_raw) if decimals_raw not in ("0x", "") else 18,
            "symbol": decode_string(symbol_raw),
            "name": decode_string(name_raw),
        }

    async def hex_stake_count(self, hex_address: str, owner: str) -> int:
        data = STAKE_COUNT_SELECTOR + topic_for_address(owner)[2:]
        return decode_uint(await self.eth_call(hex_address, data))

    # ----- BalanceSource -----

    async def get_token_balance(self, address: str, token_address: str) -> Optional[Token]:
        raw = await self.erc20_balance(token_address, address)
        meta = await self.erc20_metadata(token_address)
        decimals = int(meta["decimals"])
        return Token(
            address=token_address.lower(),
            symbol=meta["symbol"] or "UNKNOWN",
            name=meta["name"] or "Unknown Token",
            decimals=decimals,
            balance=str(raw),
            balance_formatted=format_units(raw, decimals),
            is_lp=is_lp_token(meta["symbol"], meta["name"]),
        )

    async def get_wallet_tokens(self, address: str) -> List[Token]:
        tokens = [native_token(str(await self.get_balance(address)))]
        for token_address in self.tracked_tokens:
            try:
                token = await self.get_token_balance(address, token_address)
            except FetchError as e:
                logger.warning("RPC balance read failed for %s: %s", token_address, e)
                continue
            if token is not None and int(token.balance) > 0:
                tokens.append(token)
        return tokens


def decode_uint(data: Optional[str]) -> int:
    if not data or data == "0x":
        return 0
    return int(data[2:66] if data.startswith("0x") else data[:64], 16)


def decode_string(data: Optional[str]) -> str:
    """Decode an ABI string return value, falling back to bytes32 encoding."""

    if not data or data == "0x":
        return ""
    raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    try:
        if len(raw) >= 64:
            offset = int.from_bytes(raw[:32], "big")
            length = int.from_bytes(raw[offset:offset + 32], "big")
            start = offset + 32
            if start + length <= len(raw):
                return raw[start:start + length].decode("utf-8", errors="ignore")
        return raw[:32].rstrip(b"\x00").decode("utf-8", errors="ignore")
    except (ValueError, OverflowError):
        return ""
