"""
Solana RPC Client for escrow SDK.

JSON-RPC over a reusable httpx.AsyncClient. Read-only queries are stateless
and safe to share between the validator and the transaction executor.
"""

import os
import base64
import asyncio
import logging
import struct
from typing import Optional, Dict, Any, List, Sequence, Tuple
from dataclasses import dataclass, replace

import httpx
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ..core import (
    DEFAULT_COMMITMENT, DEFAULT_ESCROW_PROGRAM_ID,
    AccountInfo, TokenAccount, BlockhashInfo, SignatureStatus, ConfirmationResult,
    to_pubkey,
)
from ..errors import RpcError, SubmissionError, TransactionExpiredError

log = logging.getLogger(__name__)


# RPC endpoints
RPC_ENDPOINTS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet": "https://api.mainnet-beta.solana.com",
    "localnet": "http://127.0.0.1:8899",
}

# Commitment levels in increasing order of finality
COMMITMENT_ORDER = ("processed", "confirmed", "finalized")

# SPL token account: mint | owner | amount u64 ... state at 108
TOKEN_ACCOUNT_SIZE = 165
_TOKEN_ACCOUNT_HEAD = struct.Struct("<32s32sQ")
_TOKEN_STATE_OFFSET = 108


@dataclass
class SolanaConfig:
    """Solana cluster configuration."""
    network: str = "devnet"
    rpc_url: str = ""                          # Empty = endpoint for network
    program_id: str = DEFAULT_ESCROW_PROGRAM_ID
    commitment: str = DEFAULT_COMMITMENT
    request_timeout: float = 30.0              # seconds per RPC call
    poll_interval: float = 0.5                 # seconds between status polls

    @classmethod
    def from_env(cls) -> "SolanaConfig":
        """Build config from SOLANA_* / ESCROW_PROGRAM_ID environment variables."""
        return cls(
            network=os.environ.get("SOLANA_NETWORK", "devnet"),
            rpc_url=os.environ.get("SOLANA_RPC_URL", ""),
            program_id=os.environ.get("ESCROW_PROGRAM_ID", DEFAULT_ESCROW_PROGRAM_ID),
            commitment=os.environ.get("SOLANA_COMMITMENT", DEFAULT_COMMITMENT),
        )

    def with_network(self, network: str) -> "SolanaConfig":
        """Copy pointed at network's public endpoint, dropping any explicit rpc_url."""
        return replace(self, network=network, rpc_url="")


def decode_token_account(address: Pubkey, data: bytes) -> TokenAccount:
    """Decode an SPL token account."""
    if len(data) < TOKEN_ACCOUNT_SIZE:
        raise ValueError(f"Token account {address} too short: {len(data)} bytes")
    mint, owner, amount = _TOKEN_ACCOUNT_HEAD.unpack_from(data)
    return TokenAccount(
        address=address,
        mint=Pubkey(mint),
        owner=Pubkey(owner),
        amount=amount,
        state=data[_TOKEN_STATE_OFFSET],
    )


class SolanaClient:
    """
    Solana JSON-RPC client.

    Implements the ledger interfaces the escrow client and the executor
    consume: account fetches, blockhash, submission and confirmation.
    """

    def __init__(self, config: SolanaConfig = None,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.config = config or SolanaConfig()
        self.rpc_url = self.config.rpc_url or RPC_ENDPOINTS.get(self.config.network, "")
        if not self.rpc_url:
            raise ValueError(f"No RPC endpoint for network {self.config.network!r}")
        self.commitment = self.config.commitment
        self._http = http_client
        self._request_id = 0

    async def __aenter__(self) -> "SolanaClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.config.request_timeout)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()

    async def _call_rpc(self, method: str, params: List = None) -> Any:
        """Make JSON-RPC call."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        try:
            response = await asyncio.wait_for(
                self._get_http().post(self.rpc_url, json=payload),
                timeout=self.config.request_timeout,
            )
            response.raise_for_status()
            data = response.json()
        except asyncio.TimeoutError as e:
            raise SubmissionError(f"RPC timeout: {method}") from e
        except httpx.HTTPError as e:
            raise SubmissionError(f"RPC call {method} failed: {e}") from e
        except ValueError as e:
            raise SubmissionError(f"Invalid JSON response from {method}: {e}") from e

        if "error" in data:
            err = data["error"]
            raise RpcError(method, err.get("message", str(err)),
                           code=err.get("code"), data=err.get("data"))

        return data.get("result")

    # =========================================================================
    # Accounts
    # =========================================================================

    async def get_account(self, address) -> Optional[AccountInfo]:
        """Account data and owning program, or None if the account does not exist."""
        address = to_pubkey(address)
        result = await self._call_rpc("getAccountInfo", [
            str(address),
            {"encoding": "base64", "commitment": self.commitment},
        ])
        value = (result or {}).get("value")
        if value is None:
            return None
        return AccountInfo(
            address=address,
            data=base64.b64decode(value["data"][0]),
            owner=Pubkey.from_string(value["owner"]),
        )

    async def get_account_info(self, address) -> Optional[bytes]:
        """Raw account data, or None if the account does not exist."""
        account = await self.get_account(address)
        return account.data if account else None

    async def get_program_accounts(self, program_id,
                                   filters: List[Dict] = None) -> List[Tuple[Pubkey, bytes]]:
        """All accounts owned by program_id matching filters."""
        program_id = to_pubkey(program_id, "program_id")
        opts: Dict[str, Any] = {"encoding": "base64", "commitment": self.commitment}
        if filters:
            opts["filters"] = filters

        result = await self._call_rpc("getProgramAccounts", [str(program_id), opts])
        accounts = []
        for item in result or []:
            accounts.append((
                Pubkey.from_string(item["pubkey"]),
                base64.b64decode(item["account"]["data"][0]),
            ))
        return accounts

    async def get_token_account(self, address) -> Optional[TokenAccount]:
        """Decoded SPL token account, or None if it does not exist."""
        address = to_pubkey(address)
        data = await self.get_account_info(address)
        if data is None:
            return None
        return decode_token_account(address, data)

    # =========================================================================
    # Blocks
    # =========================================================================

    async def get_latest_blockhash(self) -> BlockhashInfo:
        result = await self._call_rpc("getLatestBlockhash", [{"commitment": self.commitment}])
        value = result["value"]
        return BlockhashInfo(
            blockhash=value["blockhash"],
            last_valid_block_height=value["lastValidBlockHeight"],
        )

    async def get_block_height(self) -> int:
        return await self._call_rpc("getBlockHeight", [{"commitment": self.commitment}])

    # =========================================================================
    # Transactions
    # =========================================================================

    async def send_transaction(self, tx: Transaction) -> str:
        """Broadcast a signed transaction. Returns its signature."""
        encoded = base64.b64encode(bytes(tx)).decode()
        return await self._call_rpc("sendTransaction", [
            encoded,
            {"encoding": "base64", "preflightCommitment": self.commitment},
        ])

    async def send_instructions(self, instructions: Sequence[Instruction],
                                payer, signers: Sequence) -> str:
        """Build, sign and broadcast a transaction for instructions."""
        blockhash = await self.get_latest_blockhash()
        recent = Hash.from_string(blockhash.blockhash)
        message = Message.new_with_blockhash(list(instructions), to_pubkey(payer, "payer"), recent)
        tx = Transaction(list(signers), message, recent)

        signature = await self.send_transaction(tx)
        log.info(f"Sent TX: {signature}")
        return signature

    async def get_signature_statuses(self, signatures: List[str]) -> List[Optional[SignatureStatus]]:
        result = await self._call_rpc("getSignatureStatuses", [
            signatures,
            {"searchTransactionHistory": False},
        ])
        statuses = []
        for item in (result or {}).get("value", []):
            if item is None:
                statuses.append(None)
                continue
            statuses.append(SignatureStatus(
                slot=item.get("slot", 0),
                confirmations=item.get("confirmations"),
                err=item.get("err"),
                confirmation_status=item.get("confirmationStatus"),
            ))
        return statuses

    async def get_transaction_logs(self, signature: str) -> List[str]:
        """Program log lines of a landed transaction (empty if unavailable)."""
        result = await self._call_rpc("getTransaction", [
            signature,
            {"encoding": "json", "commitment": "confirmed", "maxSupportedTransactionVersion": 0},
        ])
        if not result:
            return []
        return (result.get("meta") or {}).get("logMessages") or []

    async def confirm_transaction(self, signature: str, commitment: str = None,
                                  last_valid_block_height: Optional[int] = None) -> ConfirmationResult:
        """
        Wait until signature reaches commitment.

        A ledger execution error is returned in result.err, not raised.

        Raises:
            TransactionExpiredError: block height passed last_valid_block_height
                before the signature reached the commitment
        """
        commitment = commitment or self.commitment
        target = COMMITMENT_ORDER.index(commitment)

        while True:
            statuses = await self.get_signature_statuses([signature])
            status = statuses[0] if statuses else None

            if status is not None:
                if status.err is not None:
                    logs = await self.get_transaction_logs(signature)
                    log.error(f"TX {signature} failed on-chain: {status.err}")
                    return ConfirmationResult(signature=signature, err=status.err, logs=logs)

                reached = status.confirmation_status
                if reached in COMMITMENT_ORDER and COMMITMENT_ORDER.index(reached) >= target:
                    log.info(f"TX {signature} reached {reached}")
                    return ConfirmationResult(signature=signature)

            if last_valid_block_height is not None:
                height = await self.get_block_height()
                if height > last_valid_block_height:
                    raise TransactionExpiredError(signature, last_valid_block_height)

            await asyncio.sleep(self.config.poll_interval)
