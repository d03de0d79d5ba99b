"""
Client-side secret sharing using nilql cluster keys.

Embeddings are split with additive shares (so nodes can subtract them) and
chunk texts with XOR shares. Every value becomes a list with one share per
node, and all shares are needed to combine it again.
"""
from typing import Any, List, Optional, Sequence

import nilql

from veilrag.shared.errors import CodecError, ConfigurationError

PRECISION = 7
SCALING_FACTOR = 10 ** PRECISION

# nilql sum shares carry signed 32-bit plaintexts. Embedding values are held to
# half that range so that any stored-minus-query difference still fits.
MAX_FIXED_POINT = 2 ** 30


def to_fixed_point(value: float) -> int:
    """Scale a float by 10^7 and round to the nearest integer."""
    return int(round(float(value) * SCALING_FACTOR))


def from_fixed_point(value: int) -> float:
    """Inverse of to_fixed_point."""
    return int(value) / SCALING_FACTOR


def generate_keys(num_nodes: int):
    """
    Create the (additive, xor) cluster keys for a cluster of `num_nodes`.

    Secret sharing needs at least two parties.
    """
    if num_nodes < 2:
        raise ConfigurationError(
            f"Secret sharing needs at least 2 nodes, got {num_nodes}"
        )
    cluster = {"nodes": [{} for _ in range(num_nodes)]}
    additive_key = nilql.ClusterKey.generate(cluster, {"sum": True})
    xor_key = nilql.ClusterKey.generate(cluster, {"store": True})
    return additive_key, xor_key


def encrypt_float_list(key, values: Sequence[float]) -> List[List[Any]]:
    """Split each value into a share set. Order is preserved."""
    try:
        return [nilql.encrypt(key, to_fixed_point(v)) for v in values]
    except (ValueError, TypeError) as e:
        raise CodecError(f"Failed to split float values: {e}") from e


def decrypt_float_list(key, share_lists: Sequence[Sequence[Any]]) -> List[float]:
    """Combine each share set back into a float. Order is preserved."""
    try:
        return [from_fixed_point(nilql.decrypt(key, list(s))) for s in share_lists]
    except (ValueError, TypeError, KeyError, IndexError) as e:
        raise CodecError(f"Failed to combine float shares: {e}") from e


def encrypt_string_list(key, values: Sequence[str]) -> List[List[Any]]:
    """Split each string into a share set. Order is preserved."""
    try:
        return [nilql.encrypt(key, v) for v in values]
    except (ValueError, TypeError) as e:
        raise CodecError(f"Failed to split string values: {e}") from e


def decrypt_string_list(key, share_lists: Sequence[Sequence[Any]]) -> List[str]:
    """Combine each share set back into a string. Order is preserved."""
    try:
        return [str(nilql.decrypt(key, list(s))) for s in share_lists]
    except (ValueError, TypeError, KeyError, IndexError) as e:
        raise CodecError(f"Failed to combine string shares: {e}") from e


class SecretSharingCodec:
    """
    Holds the cluster keys for one client session.

    Responsible for:
    - Splitting embeddings into additive shares
    - Splitting chunk texts into XOR shares
    - Combining per-node shares back into plaintext
    """

    def __init__(
        self,
        num_nodes: int,
        additive_key: Optional[Any] = None,
        xor_key: Optional[Any] = None,
    ):
        """
        Initialize codec.

        Args:
            num_nodes: Number of parties in the cluster
            additive_key: Existing sum key (generated if None)
            xor_key: Existing store key (generated if None)
        """
        self.num_nodes = num_nodes
        if additive_key is None or xor_key is None:
            generated_additive, generated_xor = generate_keys(num_nodes)
            additive_key = additive_key if additive_key is not None else generated_additive
            xor_key = xor_key if xor_key is not None else generated_xor
        self.additive_key = additive_key
        self.xor_key = xor_key

    def encrypt_embedding(self, embedding: Sequence[float]) -> List[List[Any]]:
        """
        Embedding -> [dimension][party] shares.

        Raises:
            CodecError: a value exceeds MAX_FIXED_POINT / SCALING_FACTOR
                (about 107.37) in magnitude
        """
        for i, value in enumerate(embedding):
            if abs(to_fixed_point(value)) > MAX_FIXED_POINT:
                raise CodecError(
                    f"Embedding value {value} at index {i} is out of range "
                    f"(|v| <= {MAX_FIXED_POINT / SCALING_FACTOR:.2f})"
                )
        shares = encrypt_float_list(self.additive_key, embedding)
        self._check_width(shares)
        return shares

    def decrypt_embedding(self, shares: Sequence[Sequence[Any]]) -> List[float]:
        """[dimension][party] shares -> embedding."""
        self._check_width(shares)
        return decrypt_float_list(self.additive_key, shares)

    def encrypt_chunk(self, chunk: str) -> List[Any]:
        """Chunk text -> [party] shares."""
        shares = encrypt_string_list(self.xor_key, [chunk])[0]
        self._check_width([shares])
        return shares

    def decrypt_chunk(self, shares: Sequence[Any]) -> str:
        """[party] shares -> chunk text."""
        self._check_width([shares])
        return decrypt_string_list(self.xor_key, [shares])[0]

    def _check_width(self, share_lists) -> None:
        for shares in share_lists:
            if len(shares) != self.num_nodes:
                raise CodecError(
                    f"Expected {self.num_nodes} shares, got {len(shares)}"
                )
