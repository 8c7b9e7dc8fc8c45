# zamail/__main__.py
"""
ZaMail: Offline Demo

Runs the full message flow against the in-process devnet:

    1. Alice and Bob connect on chain 31337
    2. Alice sends an encrypted message to Bob
    3. Bob refreshes and decrypts it (one signature prompt)

Run:
    python -m zamail --text hi --log-level INFO
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from .codec import MAX_MESSAGE_LENGTH
from .config import ZaMailConfig, configure_logging
from .devnet import LocalDevnet
from .errors import MessageValidationError


def print_header(title: str) -> None:
    print(f"\n{'=' * 70}")
    print(f"  {title}")
    print('=' * 70)


async def run_demo(text: str, config: ZaMailConfig) -> bool:
    devnet = LocalDevnet(chain_id=next(iter(config.mock_chains), 31337))
    alice = devnet.client(0, config=config)
    bob = devnet.client(1, config=config)

    print_header("1. Connect wallets")
    await alice.connect()
    await bob.connect()
    print(alice.coordinator.render_status())

    print_header(f"2. Alice sends {text!r} to Bob")
    receipt = await alice.coordinator.send_message(devnet.address(1), text)
    if receipt is None:
        print(f"Send failed: {alice.coordinator.error}")
        return False
    print(f"tx {receipt.tx_hash}")
    print(alice.coordinator.render_status())

    print_header("3. Bob refreshes and decrypts")
    await bob.coordinator.refresh_messages()
    if not bob.coordinator.received_messages:
        print("Bob has no messages")
        return False
    message_id = bob.coordinator.received_messages[-1]
    clear = await bob.coordinator.decrypt_message(message_id)
    print(bob.coordinator.render_status())

    prompts = bob.provider.count("eth_signTypedData_v4")
    print(f"\nSignature prompts for Bob: {prompts}")

    await alice.close()
    await bob.close()
    return clear is not None and clear.clear == text


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="zamail", description="ZaMail offline demo")
    parser.add_argument(
        "--text",
        default="hi",
        help=f"message to send (max {MAX_MESSAGE_LENGTH} characters)",
    )
    parser.add_argument("--log-level", default=None, help="logging level (default from ZAMAIL_LOG_LEVEL)")
    args = parser.parse_args(argv)

    config = ZaMailConfig.from_env()
    if args.log_level:
        config.log_level = args.log_level.upper()
    configure_logging(config.log_level)

    try:
        ok = asyncio.run(run_demo(args.text, config))
    except MessageValidationError as e:
        parser.error(str(e))
    print("\n✅ Demo completed" if ok else "\n❌ Demo failed")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
