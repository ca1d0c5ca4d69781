import hashlib
from typing import List

DIGEST_SIZE = 32

MAX_U64 = 2**64 - 1


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def encode_u64(n: int) -> bytes:
    """Encode a non-negative integer as 8 big-endian bytes."""
    if not (0 <= n <= MAX_U64):
        raise ValueError(f"Value out of range for u64: {n}")
    return n.to_bytes(8, byteorder='big')


def encode_int(x: int) -> bytes:
    """Minimal signed little-endian encoding of an integer; the empty string encodes 0."""
    if x == 0:
        return b''
    n_bytes = (x.bit_length() + 8) // 8
    return x.to_bytes(n_bytes, byteorder='little', signed=True)


def decode_int(s: bytes) -> int:
    if len(s) == 0:
        return 0
    return int.from_bytes(s, byteorder='little', signed=True)


def check_digest(h: bytes, name: str = "hash"):
    if not isinstance(h, bytes) or len(h) != DIGEST_SIZE:
        raise ValueError(f"{name} must be a {DIGEST_SIZE}-byte digest")


def short_hex(h: bytes, n: int = 8) -> str:
    return h.hex()[:n]


def format_segments_markdown(segment_hashes: List[bytes], title: str, start: int, count: int) -> str:
    s = f"<details><summary>{title} <i>(steps {start}..{start + count}, {len(segment_hashes)} segments)</i></summary>\n\n"
    s += "```\n"
    for i, h in enumerate(segment_hashes):
        s += f"  - [{i}] {h.hex()}\n"
    s += "```\n\n</details>\n"
    return s
