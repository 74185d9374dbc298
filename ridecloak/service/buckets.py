"""
Two-stage bucket derivation.

Stage 1: signatures(cell, count) -> `count` short hashes of (cell, index, freshness salt).
Stage 2: bucket_tokens(signatures, secret) -> one longer hash per signature.

The tokens are what the matching engine intersects. This is a bucketization
scheme, not encryption: anyone holding the secret and the cell can recompute them.
"""

import hashlib
import itertools
import time
from typing import Callable, List, Optional, Sequence

SIGNATURE_LENGTH = 16
TOKEN_LENGTH = 32

_sequence = itertools.count()


class FreshnessWindow:
    """Controls how long a (cell, scope) pair keeps the same signatures.

    seconds <= 0: every derivation is fresh (nanosecond clock plus a process-wide counter).
    seconds > 0: derivations for the same scope inside one window share a salt.
    """

    def __init__(self, seconds: float = 0, clock: Callable[[], float] = time.time):
        self.seconds = seconds
        self.clock = clock

    def salt(self, scope: str = "") -> str:
        if self.seconds <= 0:
            return f"{scope}:{time.time_ns()}:{next(_sequence)}"
        return f"{scope}:{int(self.clock() // self.seconds)}"


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def signatures(
    cell_id: str,
    count: int,
    freshness: str,
    length: int = SIGNATURE_LENGTH,
) -> List[str]:
    return [
        _digest(f"{cell_id}salt_{index}_{freshness}")[:length]
        for index in range(count)
    ]


def bucket_tokens(sigs: Sequence[str], shared_secret: str, length: int = TOKEN_LENGTH) -> List[str]:
    return [_digest(f"{sig}{shared_secret}")[:length] for sig in sigs]


class BucketGenerator:
    def __init__(
        self,
        shared_secret: str,
        count: int = 3,
        window: Optional[FreshnessWindow] = None,
        signature_length: int = SIGNATURE_LENGTH,
        token_length: int = TOKEN_LENGTH,
    ):
        if count < 1:
            raise ValueError("signature count must be at least 1")
        if not 1 <= signature_length <= 64 or not 1 <= token_length <= 64:
            raise ValueError("hash lengths must be between 1 and 64 hex characters")
        self.shared_secret = shared_secret
        self.count = count
        self.window = window or FreshnessWindow()
        self.signature_length = signature_length
        self.token_length = token_length

    def derive(self, cell_id: str, scope: str = ""):
        """Return (signatures, tokens) for a cell within the given scope."""
        sigs = signatures(cell_id, self.count, self.window.salt(scope), self.signature_length)
        return sigs, bucket_tokens(sigs, self.shared_secret, self.token_length)
