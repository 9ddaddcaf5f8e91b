from __future__ import annotations
from typing import NewType, Literal

Hash32 = NewType("Hash32", str)     # 66-char 0x-hash, lowercase
Direction = Literal["prev", "next"]

UINT256_MAX = 2**256 - 1
