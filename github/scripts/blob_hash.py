"""
Git blob object ids.

GitHub reports a file's Blob.oid as the SHA-1 of the git object framing
"blob <size>\\0" followed by the raw content, so hashing local bytes the
same way tells whether a remote file already holds them.
"""

import hashlib


def compute_blob_hash(content: bytes) -> str:
    """
    Compute the git blob object id for content.

    Args:
        content: Raw file bytes (may be empty)

    Returns:
        40-character lowercase hex SHA-1
    """
    header = b"blob %d\x00" % len(content)
    return hashlib.sha1(header + content).hexdigest()
