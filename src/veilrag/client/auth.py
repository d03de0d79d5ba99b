"""
Per-node, audience-scoped bearer tokens.

One secp256k1 key signs a token for every node. Each token names a single
node in its audience claim, so a node rejects tokens meant for its peers.
"""
import logging
import time
from typing import Dict, Optional

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from veilrag.client.nodes import NodeRegistry
from veilrag.shared.errors import AuthExpired, ConfigurationError

logger = logging.getLogger(__name__)

ALGORITHM = "ES256K"
DEFAULT_TTL = 3600  # seconds

_SECP256K1_ORDER = int(
    "FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16
)


def derive_private_key(secret_key: str) -> ec.EllipticCurvePrivateKey:
    """Derive a secp256k1 private key from a 32-byte hex secret."""
    if not isinstance(secret_key, str):
        raise ConfigurationError("Secret key must be a hex string")
    try:
        raw = bytes.fromhex(secret_key.removeprefix("0x"))
    except ValueError as e:
        raise ConfigurationError(f"Secret key is not valid hex: {e}") from e
    if len(raw) != 32:
        raise ConfigurationError(f"Secret key must be 32 bytes, got {len(raw)}")

    value = int.from_bytes(raw, "big")
    if not 0 < value < _SECP256K1_ORDER:
        raise ConfigurationError("Secret key is outside the secp256k1 range")
    return ec.derive_private_key(value, ec.SECP256K1())


class Authenticator:
    """
    Issues node credentials from a single secret key.

    Responsible for:
    - Deriving the signing key pair
    - Signing one token per node with {iss: org, aud: node_id, exp}
    - Exposing the public key nodes verify against
    """

    def __init__(self, secret_key: str):
        self._private_key = derive_private_key(secret_key)

    @property
    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self._private_key.public_key()

    @property
    def public_key_pem(self) -> str:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("utf-8")

    def sign(self, org: str, audience: str, ttl: int = DEFAULT_TTL,
             now: Optional[int] = None) -> str:
        now = int(time.time()) if now is None else now
        payload = {"iss": org, "aud": audience, "exp": now + ttl}
        return jwt.encode(payload, self._private_key, algorithm=ALGORITHM)

    def issue_credentials(
        self,
        registry: NodeRegistry,
        ttl: int = DEFAULT_TTL,
        now: Optional[int] = None,
    ) -> Dict[str, str]:
        """
        Sign a token for every node and store it on the node.

        Tokens are only stored once all of them were signed.

        Args:
            registry: Cluster nodes
            ttl: Token lifetime in seconds
            now: Issue time as a unix timestamp (defaults to the current time)

        Returns:
            node_id -> token
        """
        if ttl <= 0:
            raise ConfigurationError(f"ttl must be positive, got {ttl}")
        now = int(time.time()) if now is None else now

        tokens = {
            node.node_id: self.sign(node.org, node.node_id, ttl=ttl, now=now)
            for node in registry
        }
        for node in registry:
            node.bearer_token = tokens[node.node_id]
            logger.info("Issued token for node %s (expires %d)", node.node_id, now + ttl)
        return tokens


def verify_token(
    token: str,
    public_key,
    node_id: str,
    org: Optional[str] = None,
) -> dict:
    """
    Check a bearer token on the node side.

    Raises:
        AuthExpired: if the token is past its expiry
        jwt.InvalidTokenError: wrong audience, issuer or signature
    """
    options = {"require": ["exp", "aud", "iss"]}
    try:
        return jwt.decode(
            token,
            public_key,
            algorithms=[ALGORITHM],
            audience=node_id,
            issuer=org,
            options=options,
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthExpired(f"Token for {node_id} expired", node_id=node_id) from e
