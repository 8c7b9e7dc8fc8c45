# zamail/tests/helpers.py
"""
ZaMail Tests: shared utilities.
"""

from __future__ import annotations

import traceback
from typing import Any, Callable, Dict, List

from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount

from ..adapters import Signer


def print_header(title: str) -> None:
    """Print test section header."""
    print(f"\n{'=' * 70}")
    print(f"  {title}")
    print('=' * 70)


def print_step(step: str) -> None:
    """Print test step."""
    print(f"\n  → {step}")


def print_result(passed: bool, details: str = "") -> None:
    """Print test result."""
    status = "✅ PASS" if passed else "❌ FAIL"
    if details:
        print(f"    {status}: {details}")
    else:
        print(f"    {status}")


class FakeClock:
    """Settable time source."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def run_test_functions(title: str, tests: List[Callable[[], None]]) -> bool:
    """Run plain test functions, print a summary, return overall success."""
    print_header(title)

    results: Dict[str, bool] = {}
    for test in tests:
        try:
            test()
            results[test.__name__] = True
        except Exception:
            traceback.print_exc()
            results[test.__name__] = False
        print_result(results[test.__name__], test.__name__)

    passed = sum(results.values())
    print("=" * 70)
    print(f"  Result: {passed}/{len(results)} tests passed")
    print("=" * 70)
    return passed == len(results)


class LocalAccountSigner(Signer):
    """Signs with an in-process eth_account key, counting signatures."""

    def __init__(self, account: LocalAccount):
        self._account = account
        self.signatures = 0

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        self.signatures += 1
        signed = self._account.sign_message(encode_typed_data(full_message=typed_data))
        return bytes(signed.signature)
