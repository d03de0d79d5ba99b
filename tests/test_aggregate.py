"""Tests for share grouping, reconstruction and ranking."""
import random

import pytest

from veilrag.client.aggregate import (
    group_shares_by_id,
    rank_by_distance,
    reconstruct_differences,
)
from veilrag.client.crypto import SecretSharingCodec
from veilrag.shared.errors import AggregationError, QuorumError
from veilrag.shared.utils import euclidean_distance, find_closest_chunks


def party_results(num_parties, ids):
    return [
        [{"_id": rid, "difference": [party, i]} for i, rid in enumerate(ids)]
        for party in range(num_parties)
    ]


class TestGroupSharesById:
    """Test regrouping of per-node results by record id."""

    def test_m_keys_with_n_entries(self):
        ids = [f"rec-{i}" for i in range(5)]
        grouped = group_shares_by_id(party_results(3, ids), lambda s: s["difference"])

        assert set(grouped) == set(ids)
        assert all(len(v) == 3 for v in grouped.values())
        # party order preserved
        assert [p[0] for p in grouped["rec-2"]] == [0, 1, 2]

    def test_order_within_party_irrelevant(self):
        ids = ["a", "b", "c"]
        results = party_results(3, ids)
        results[1].reverse()
        grouped = group_shares_by_id(results, lambda s: s["difference"])
        assert [p[0] for p in grouped["a"]] == [0, 1, 2]

    def test_record_missing_on_one_node(self):
        results = party_results(3, ["a", "b"])
        results[2] = results[2][:1]
        with pytest.raises(AggregationError, match="lack a share"):
            group_shares_by_id(results, lambda s: s["difference"])

    def test_record_missing_on_middle_node(self):
        results = party_results(3, ["a", "b"])
        results[1] = results[1][1:]
        with pytest.raises(AggregationError, match="Record a lacks a share from node 1"):
            group_shares_by_id(results, lambda s: s["difference"])

    def test_record_repeated_by_one_node(self):
        results = party_results(2, ["a"])
        results[0].append(results[0][0])
        with pytest.raises(AggregationError):
            group_shares_by_id(results, lambda s: s["difference"])

    def test_missing_node(self):
        with pytest.raises(QuorumError):
            group_shares_by_id(party_results(2, ["a"]), lambda s: s, num_parties=3)


class TestReconstructAndRank:
    """Test difference reconstruction and distance ranking."""

    def test_reconstruct(self):
        codec = SecretSharingCodec(3)
        stored = {"a": [1.0, 2.0], "b": [0.0, 0.0]}
        query_shares = codec.encrypt_embedding([1.0, 2.0])

        per_party = [[] for _ in range(3)]
        for rid, vec in stored.items():
            shares = codec.encrypt_embedding(vec)
            for party in range(3):
                per_party[party].append({
                    "_id": rid,
                    "difference": [d[party] - q[party] for d, q in zip(shares, query_shares)],
                })

        grouped = group_shares_by_id(per_party, lambda s: s["difference"])
        differences = reconstruct_differences(codec, grouped)

        assert differences["a"] == pytest.approx([0.0, 0.0], abs=1e-7)
        assert differences["b"] == pytest.approx([-1.0, -2.0], abs=1e-7)

    def test_rank_by_distance(self):
        ranked = rank_by_distance(
            {"far": [3.0, 4.0], "exact": [0.0, 0.0], "near": [0.0, 1.0]},
            top_k=2,
        )
        assert ranked == [("exact", 0.0), ("near", 1.0)]

    def test_rank_empty(self):
        assert rank_by_distance({}, top_k=3) == []


class TestFindClosestChunks:
    """Test the plaintext ranking path."""

    def test_exact_match_first_any_order(self):
        rng = random.Random(3)
        query = [0.1, 0.2, 0.3]
        candidates = [("exact", list(query))] + [
            (f"c{i}", [rng.uniform(-1, 1) for _ in range(3)]) for i in range(8)
        ]
        for _ in range(10):
            rng.shuffle(candidates)
            chunks = [c for c, _ in candidates]
            embeddings = [e for _, e in candidates]
            for top_k in (1, 3, 20):
                result = find_closest_chunks(query, chunks, embeddings, top_k=top_k)
                assert result[0] == ("exact", 0.0)
                assert len(result) == min(top_k, len(candidates))
                distances = [d for _, d in result]
                assert distances == sorted(distances)

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            find_closest_chunks([0.0], ["a", "b"], [[0.0]])

    def test_euclidean_distance(self):
        assert euclidean_distance([0, 0], [3, 4]) == pytest.approx(5.0)
        with pytest.raises(ValueError, match="mismatch"):
            euclidean_distance([0, 0], [1, 2, 3])
