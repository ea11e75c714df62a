"""
Solana JSON-RPC client tests against an httpx.MockTransport node.
"""

import base64
import json
import struct
import unittest
from unittest import mock

import httpx
from solders.keypair import Keypair

from escrow_sdk.chains.solana import (
    SolanaClient, SolanaConfig, decode_token_account, TOKEN_ACCOUNT_SIZE,
)
from escrow_sdk.core import TOKEN_PROGRAM_ID
from escrow_sdk.errors import RpcError, SubmissionError, TransactionExpiredError


def token_account_data(mint, owner, amount, state=1):
    data = bytearray(TOKEN_ACCOUNT_SIZE)
    struct.pack_into("<32s32sQ", data, 0, bytes(mint), bytes(owner), amount)
    data[108] = state
    return bytes(data)


class FakeNode:
    """Answers JSON-RPC requests from a method -> handler table."""

    def __init__(self, **handlers):
        self.handlers = handlers
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        handler = self.handlers[body["method"]]
        reply = handler(body["params"])
        if isinstance(reply, httpx.Response):
            return reply
        reply.setdefault("jsonrpc", "2.0")
        reply["id"] = body["id"]
        return httpx.Response(200, json=reply)

    def methods(self):
        return [r["method"] for r in self.requests]


def result(value):
    return lambda params: {"result": value}


class RpcTestCase(unittest.IsolatedAsyncioTestCase):

    def client(self, node: FakeNode, **config) -> SolanaClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(node))
        cfg = SolanaConfig(network="localnet", poll_interval=0, **config)
        rpc = SolanaClient(cfg, http_client=http)
        self.addAsyncCleanup(rpc.aclose)
        return rpc


class TestConfig(unittest.TestCase):

    def test_endpoint_from_network(self):
        """Network picks the public endpoint unless rpc_url is set."""
        self.assertEqual(SolanaClient(SolanaConfig()).rpc_url, "https://api.devnet.solana.com")
        self.assertEqual(SolanaClient(SolanaConfig(rpc_url="http://node:8899")).rpc_url,
                         "http://node:8899")

    def test_unknown_network(self):
        """An unknown network without rpc_url is refused."""
        with self.assertRaises(ValueError):
            SolanaClient(SolanaConfig(network="moonnet"))

    def test_from_env(self):
        """Environment variables populate the config."""
        env = {"SOLANA_NETWORK": "mainnet", "SOLANA_COMMITMENT": "finalized"}
        with mock.patch.dict("os.environ", env):
            cfg = SolanaConfig.from_env()
        self.assertEqual(cfg.network, "mainnet")
        self.assertEqual(cfg.commitment, "finalized")

    def test_with_network_overrides_rpc_url(self):
        """An explicit network wins over an rpc_url taken from the environment."""
        with mock.patch.dict("os.environ", {"SOLANA_RPC_URL": "http://node:8899"}):
            cfg = SolanaConfig.from_env()

        switched = cfg.with_network("testnet")

        self.assertEqual(SolanaClient(switched).rpc_url, "https://api.testnet.solana.com")
        self.assertEqual(cfg.rpc_url, "http://node:8899")


def account_value(data: bytes, owner=TOKEN_PROGRAM_ID):
    return {"value": {
        "data": [base64.b64encode(data).decode(), "base64"],
        "owner": str(owner),
    }}


class TestQueries(RpcTestCase):

    async def test_account_info(self):
        """Account data is base64-decoded from the node's reply."""
        node = FakeNode(getAccountInfo=result(account_value(b"\x01\x02")))
        rpc = self.client(node)
        self.assertEqual(await rpc.get_account_info(Keypair().pubkey()), b"\x01\x02")
        self.assertEqual(node.requests[0]["params"][1]["encoding"], "base64")

    async def test_account_owner(self):
        """get_account reports the owning program alongside the data."""
        program = Keypair().pubkey()
        address = Keypair().pubkey()
        rpc = self.client(FakeNode(getAccountInfo=result(account_value(b"\x01", owner=program))))

        account = await rpc.get_account(address)

        self.assertEqual(account.address, address)
        self.assertEqual(account.owner, program)
        self.assertEqual(account.data, b"\x01")

    async def test_missing_account(self):
        """A null value means the account does not exist."""
        rpc = self.client(FakeNode(getAccountInfo=result({"value": None})))
        self.assertIsNone(await rpc.get_account(Keypair().pubkey()))
        self.assertIsNone(await rpc.get_account_info(Keypair().pubkey()))
        self.assertIsNone(await rpc.get_token_account(Keypair().pubkey()))

    async def test_token_account(self):
        """SPL token accounts decode mint, owner and amount."""
        mint, owner, address = (Keypair().pubkey() for _ in range(3))
        rpc = self.client(FakeNode(getAccountInfo=result(
            account_value(token_account_data(mint, owner, 1234))
        )))

        account = await rpc.get_token_account(address)

        self.assertEqual(account.address, address)
        self.assertEqual(account.mint, mint)
        self.assertEqual(account.owner, owner)
        self.assertEqual(account.amount, 1234)

    async def test_program_accounts(self):
        """Program accounts are returned with filters passed through."""
        address = Keypair().pubkey()
        node = FakeNode(getProgramAccounts=result([
            {"pubkey": str(address), "account": {"data": [base64.b64encode(b"abc").decode(), "base64"]}},
        ]))
        rpc = self.client(node)
        filters = [{"dataSize": 114}]

        accounts = await rpc.get_program_accounts(Keypair().pubkey(), filters)

        self.assertEqual(accounts, [(address, b"abc")])
        self.assertEqual(node.requests[0]["params"][1]["filters"], filters)

    async def test_latest_blockhash(self):
        """Blockhash comes with its last valid block height."""
        rpc = self.client(FakeNode(getLatestBlockhash=result(
            {"value": {"blockhash": "EkSnNWid2cvwEVnVx9aBqawnmiCNiDgp3gUdkDPTKN1N",
                       "lastValidBlockHeight": 3090}}
        )))
        info = await rpc.get_latest_blockhash()
        self.assertEqual(info.last_valid_block_height, 3090)


class TestErrors(RpcTestCase):

    async def test_rpc_error_carries_logs(self):
        """JSON-RPC errors keep their code and program logs."""
        rpc = self.client(FakeNode(sendTransaction=lambda params: {"error": {
            "code": -32002,
            "message": "Transaction simulation failed: Error processing Instruction 0",
            "data": {"logs": ["Program log: InvalidAmount"]},
        }}))

        with self.assertRaises(RpcError) as ctx:
            await rpc._call_rpc("sendTransaction", ["tx"])

        self.assertEqual(ctx.exception.code, -32002)
        self.assertEqual(ctx.exception.logs, ["Program log: InvalidAmount"])
        self.assertTrue(ctx.exception.retryable)

    async def test_http_failure(self):
        """HTTP errors become SubmissionError."""
        rpc = self.client(FakeNode(getBlockHeight=lambda params: httpx.Response(503)))
        with self.assertRaises(SubmissionError):
            await rpc.get_block_height()

    async def test_invalid_json(self):
        """A non-JSON reply becomes SubmissionError."""
        rpc = self.client(FakeNode(getBlockHeight=lambda params: httpx.Response(200, text="<html>")))
        with self.assertRaises(SubmissionError):
            await rpc.get_block_height()


class TestConfirm(RpcTestCase):

    async def test_reaches_commitment(self):
        """Polling stops once the signature reaches the commitment."""
        statuses = iter([
            [None],
            [{"slot": 10, "confirmations": 0, "err": None, "confirmationStatus": "processed"}],
            [{"slot": 10, "confirmations": 1, "err": None, "confirmationStatus": "confirmed"}],
        ])
        node = FakeNode(
            getSignatureStatuses=lambda params: {"result": {"value": next(statuses)}},
            getBlockHeight=result(100),
        )
        rpc = self.client(node)

        confirmation = await rpc.confirm_transaction("sig", "confirmed", 200)

        self.assertEqual(confirmation.signature, "sig")
        self.assertIsNone(confirmation.err)
        self.assertEqual(node.methods().count("getSignatureStatuses"), 3)

    async def test_execution_error_returned(self):
        """An on-chain failure is returned with its logs, not raised."""
        err = {"InstructionError": [0, {"Custom": 6000}]}
        node = FakeNode(
            getSignatureStatuses=result({"value": [
                {"slot": 10, "confirmations": 1, "err": err, "confirmationStatus": "confirmed"},
            ]}),
            getTransaction=result({"meta": {"logMessages": ["Program log: InvalidAmount"]}}),
        )
        rpc = self.client(node)

        confirmation = await rpc.confirm_transaction("sig")

        self.assertEqual(confirmation.err, err)
        self.assertEqual(confirmation.logs, ["Program log: InvalidAmount"])

    async def test_expired(self):
        """Passing the last valid block height raises expiry."""
        node = FakeNode(
            getSignatureStatuses=result({"value": [None]}),
            getBlockHeight=result(301),
        )
        rpc = self.client(node)

        with self.assertRaises(TransactionExpiredError) as ctx:
            await rpc.confirm_transaction("sig", "confirmed", 300)
        self.assertEqual(ctx.exception.last_valid_block_height, 300)


class TestDecode(unittest.TestCase):

    def test_short_data(self):
        """Truncated token account data is rejected."""
        with self.assertRaises(ValueError):
            decode_token_account(Keypair().pubkey(), b"\x00" * 10)

    def test_frozen_state(self):
        """The account state byte is decoded."""
        account = decode_token_account(
            Keypair().pubkey(),
            token_account_data(Keypair().pubkey(), Keypair().pubkey(), 5, state=2),
        )
        self.assertEqual(account.state, 2)


if __name__ == "__main__":
    unittest.main()
