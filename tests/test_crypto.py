"""Tests for client secret-sharing codec."""
import random

import pytest

from veilrag.client.crypto import (
    SecretSharingCodec,
    decrypt_float_list,
    decrypt_string_list,
    encrypt_float_list,
    encrypt_string_list,
    from_fixed_point,
    generate_keys,
    to_fixed_point,
)
from veilrag.shared.errors import CodecError, ConfigurationError


class TestFixedPoint:
    """Test fixed-point conversion."""

    def test_scaling(self):
        assert to_fixed_point(1.0) == 10_000_000
        assert to_fixed_point(-0.25) == -2_500_000
        assert from_fixed_point(12_345_678) == pytest.approx(1.2345678)

    def test_round_trip_error_bound(self):
        rng = random.Random(7)
        for _ in range(500):
            v = rng.uniform(-100, 100)
            assert abs(from_fixed_point(to_fixed_point(v)) - v) < 0.5e-7 + 1e-12

    def test_returns_int(self):
        assert isinstance(to_fixed_point(0.1), int)


class TestSharing:
    """Test split/combine of float and string lists."""

    def test_float_list(self):
        additive_key, _ = generate_keys(3)
        values = [0.1, -0.2, 0.333333333, 0.0, 12.5]

        shares = encrypt_float_list(additive_key, values)

        assert len(shares) == len(values)
        assert all(len(s) == 3 for s in shares)
        decrypted = decrypt_float_list(additive_key, shares)
        for orig, dec in zip(values, decrypted):
            assert abs(orig - dec) <= 1e-7

    def test_string_list(self):
        _, xor_key = generate_keys(3)
        values = ["Berlin is the capital of Germany.", "Bonn", "ümlaut ✓"]

        shares = encrypt_string_list(xor_key, values)

        assert all(len(s) == 3 for s in shares)
        assert decrypt_string_list(xor_key, shares) == values

    def test_shares_do_not_reveal_value(self):
        additive_key, _ = generate_keys(2)
        shares = encrypt_float_list(additive_key, [0.5])[0]
        assert to_fixed_point(0.5) not in shares

    def test_missing_share_fails(self):
        codec = SecretSharingCodec(3)
        shares = codec.encrypt_embedding([0.1, 0.2])
        with pytest.raises(CodecError, match="Expected 3 shares"):
            codec.decrypt_embedding([s[:2] for s in shares])

    def test_single_node_rejected(self):
        with pytest.raises(ConfigurationError):
            generate_keys(1)


class TestSecretSharingCodec:
    """Test the session codec."""

    def test_embedding_round_trip(self):
        codec = SecretSharingCodec(4)
        embedding = [0.12, -0.5, 0.99, 0.0001]

        shares = codec.encrypt_embedding(embedding)

        assert len(shares) == 4
        assert codec.decrypt_embedding(shares) == pytest.approx(embedding, abs=1e-7)

    def test_chunk_round_trip(self):
        codec = SecretSharingCodec(3)
        shares = codec.encrypt_chunk("Paris is the capital of France.")
        assert len(shares) == 3
        assert codec.decrypt_chunk(shares) == "Paris is the capital of France."

    def test_corrupted_chunk_share(self):
        codec = SecretSharingCodec(3)
        shares = codec.encrypt_chunk("Paris is the capital of France.")
        with pytest.raises(CodecError):
            codec.decrypt_chunk(["!!!", shares[1], shares[2]])

    def test_out_of_range_value_rejected(self):
        codec = SecretSharingCodec(3)
        with pytest.raises(CodecError, match="out of range"):
            codec.encrypt_embedding([0.5, 200.0])
        with pytest.raises(CodecError, match="out of range"):
            codec.encrypt_embedding([-150.0])

    def test_wide_difference_in_range(self):
        codec = SecretSharingCodec(3)
        limit = 100.0
        stored = codec.encrypt_embedding([limit, -limit])
        query = codec.encrypt_embedding([-limit, limit])

        differences = [
            [s - q for s, q in zip(stored_dim, query_dim)]
            for stored_dim, query_dim in zip(stored, query)
        ]

        assert codec.decrypt_embedding(differences) == pytest.approx(
            [2 * limit, -2 * limit], abs=1e-6
        )

    def test_difference_of_shares(self):
        """Share-wise subtraction combines into the plaintext difference."""
        codec = SecretSharingCodec(3)
        stored = codec.encrypt_embedding([1.0, 2.0, 3.0])
        query = codec.encrypt_embedding([0.5, 2.0, 4.0])

        differences = [
            [s - q for s, q in zip(stored_dim, query_dim)]
            for stored_dim, query_dim in zip(stored, query)
        ]

        assert codec.decrypt_embedding(differences) == pytest.approx([0.5, 0.0, -1.0], abs=1e-7)
