# zamail/contracts/abi.py
"""
ZaMail Contracts: MessageBoard ABI

The ABI ships as JSON next to this module (Hardhat artifact layout).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Dict, Any


ABI_PATH = Path(__file__).parent / "abi" / "MessageBoard.json"


def _load_abi() -> List[Dict[str, Any]]:
    """Load contract ABI from JSON file."""
    with open(ABI_PATH, encoding="utf-8") as f:
        data = json.load(f)
    return data.get("abi", data)


MESSAGE_BOARD_ABI = _load_abi()
