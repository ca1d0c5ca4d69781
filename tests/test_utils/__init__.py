from typing import List

from dispute.utils import sha256


def fake_hashes(n: int, tag: bytes = b'') -> List[bytes]:
    return [sha256(tag + i.to_bytes(8, byteorder='big')) for i in range(n)]
