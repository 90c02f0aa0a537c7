"""
Anonymized family identity for cross-family aggregation.

The digest is only used to count distinct contributing families within a
single aggregation run. It is keyed with a salt so that stored or logged
digests cannot be reversed by hashing known family ids.
"""

import hashlib

FAMILY_HASH_BYTES = 8


def hash_family_id(family_id: str, salt: str) -> str:
    """
    Return a salted 64-bit BLAKE2b digest of a family id as hex.

    Examples:
        >>> len(hash_family_id("family-1", "salt"))
        16
    """
    digest = hashlib.blake2b(
        family_id.encode("utf-8"),
        digest_size=FAMILY_HASH_BYTES,
        key=salt.encode("utf-8")[:64],
    )
    return digest.hexdigest()
