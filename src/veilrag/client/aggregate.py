"""
Fan-in of per-node partial results: grouping, reconstruction and ranking.
"""
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from veilrag.client.crypto import SecretSharingCodec
from veilrag.shared.errors import AggregationError
from veilrag.shared.utils import bottom_k_indices, vector_norm


def _default_id(share: dict) -> str:
    return share["_id"]


def group_shares_by_id(
    shares_per_party: Sequence[Sequence[Any]],
    extract: Callable[[Any], Any],
    num_parties: Optional[int] = None,
    get_id: Callable[[Any], str] = _default_id,
) -> Dict[str, List[Any]]:
    """
    Regroup [party] -> records into record id -> [one payload per party].

    Payload order follows party order.

    Args:
        shares_per_party: One list of per-record results for each node
        extract: Pulls the share payload out of a node's record
        num_parties: Expected number of parties (defaults to len(shares_per_party))
        get_id: Reads the record id

    Raises:
        AggregationError: a record id is missing from, or repeated by, a node
    """
    num_parties = len(shares_per_party) if num_parties is None else num_parties
    if len(shares_per_party) != num_parties:
        raise AggregationError(
            f"Got results from {len(shares_per_party)} of {num_parties} nodes"
        )

    grouped: Dict[str, List[Any]] = {}
    for party, party_shares in enumerate(shares_per_party):
        for share in party_shares:
            record_id = get_id(share)
            payloads = grouped.setdefault(record_id, [])
            if len(payloads) < party:
                raise AggregationError(
                    f"Record {record_id} lacks a share from node {len(payloads)}"
                )
            if len(payloads) > party:
                raise AggregationError(f"Record {record_id} repeated by node {party}")
            payloads.append(extract(share))

    incomplete = [rid for rid, p in grouped.items() if len(p) != num_parties]
    if incomplete:
        raise AggregationError(
            f"{len(incomplete)} records lack a share from some node: {incomplete[:5]}"
        )
    return grouped


def transpose(payloads: Sequence[Sequence[Any]]) -> List[List[Any]]:
    """[party][dimension] -> [dimension][party]."""
    widths = {len(p) for p in payloads}
    if len(widths) > 1:
        raise AggregationError(f"Nodes returned vectors of different lengths: {sorted(widths)}")
    return [list(column) for column in zip(*payloads)]


def reconstruct_differences(
    codec: SecretSharingCodec,
    grouped: Dict[str, List[Sequence[Any]]],
) -> Dict[str, List[float]]:
    """Combine each record's per-node difference shares into the true difference."""
    return {
        record_id: codec.decrypt_embedding(transpose(payloads))
        for record_id, payloads in grouped.items()
    }


def rank_by_distance(
    differences: Dict[str, Sequence[float]],
    top_k: int,
) -> List[Tuple[str, float]]:
    """
    Rank records by the norm of their difference vector.

    Returns:
        (record_id, distance) pairs, closest first
    """
    if not differences:
        return []
    ids = list(differences)
    distances = np.array([vector_norm(differences[i]) for i in ids])
    return [(ids[i], float(distances[i])) for i in bottom_k_indices(distances, top_k)]
