#!/usr/bin/env python3
"""
Example: Make -> Take (or Refund) on the escrow program

1. Maker deposits mint A into a fresh escrow, asking for mint B
2. Open escrows are listed with their vault balances
3. Taker pays mint B and receives the deposit
   (or, with --refund, the maker closes the escrow and gets it back)

Both wallets need token accounts for the mints they pay with.

Usage:
    python escrow_make_take.py --maker maker.json --taker taker.json \\
        --mint-a <MINT_A> --mint-b <MINT_B> --deposit 1000 --receive 500
"""

import sys
import json
import asyncio
import argparse
import logging
import random
from pathlib import Path

from solders.keypair import Keypair

# Add SDK to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from escrow_sdk import EscrowClient, EscrowContext, SolanaConfig, EscrowSDKError, format_error
from escrow_sdk.escrow.pda import derive_escrow_address

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger(__name__)


def load_keypair(path: str) -> Keypair:
    """Load a Solana CLI keypair file (JSON array of 64 bytes)."""
    secret = json.loads(Path(path).expanduser().read_text())
    return Keypair.from_bytes(bytes(secret))


async def run(args) -> int:
    config = SolanaConfig.from_env()
    if args.network:
        config = config.with_network(args.network)

    maker = load_keypair(args.maker)
    maker_ctx = EscrowContext.from_config(config, wallet=maker)
    maker_client = EscrowClient(maker_ctx)

    seed = args.seed if args.seed is not None else random.getrandbits(53)

    try:
        # =================================================================
        # 1. Make
        # =================================================================
        log.info(f"Maker {maker.pubkey()} opening escrow seed={seed}")
        sig = await maker_client.make(seed, args.mint_a, args.mint_b, args.deposit, args.receive)
        log.info(f"Make confirmed: {sig}")

        escrow, _ = derive_escrow_address(maker.pubkey(), seed, maker_ctx.program_id)

        # =================================================================
        # 2. List
        # =================================================================
        for summary in await maker_client.list_escrows():
            log.info(f"Open escrow: {json.dumps(summary.to_dict())}")

        # =================================================================
        # 3. Take or Refund
        # =================================================================
        if args.refund:
            sig = await maker_client.refund(escrow)
            log.info(f"Refund confirmed: {sig}")
        else:
            taker_ctx = EscrowContext(rpc=maker_ctx.rpc, program_id=maker_ctx.program_id,
                                      wallet=load_keypair(args.taker))
            sig = await EscrowClient(taker_ctx).take(escrow)
            log.info(f"Take confirmed: {sig}")

    except EscrowSDKError as e:
        log.error(f"Escrow flow failed: {format_error(e)}")
        return 1
    finally:
        await maker_ctx.rpc.aclose()

    return 0


def main():
    parser = argparse.ArgumentParser(description="Escrow Make/Take example")
    parser.add_argument("--maker", required=True, help="Maker keypair file")
    parser.add_argument("--taker", help="Taker keypair file")
    parser.add_argument("--mint-a", required=True, help="Mint deposited by the maker")
    parser.add_argument("--mint-b", required=True, help="Mint requested by the maker")
    parser.add_argument("--deposit", type=int, required=True, help="Amount of mint A (base units)")
    parser.add_argument("--receive", type=int, required=True, help="Amount of mint B (base units)")
    parser.add_argument("--seed", type=int, help="Escrow seed (random if omitted)")
    parser.add_argument("--network", help="devnet / testnet / mainnet / localnet")
    parser.add_argument("--refund", action="store_true", help="Refund instead of take")
    args = parser.parse_args()

    if not args.refund and not args.taker:
        parser.error("--taker is required unless --refund is given")

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
