"""
Error taxonomy.

Every error is fatal for the operation that raised it. There is no partial
result path: reconstruction needs the share of every node.
"""


class VeilRagError(Exception):
    """Base class for all veilrag errors."""


class ConfigurationError(VeilRagError):
    """Missing or invalid node url, node id, org or secret key."""


class ProvisioningError(VeilRagError):
    """Schema or query registration failed on at least one node."""

    def __init__(self, message: str, failed_nodes=None, node_id=None):
        super().__init__(message)
        if failed_nodes is None and node_id is not None:
            failed_nodes = [node_id]
        self.failed_nodes = list(failed_nodes or [])


class AuthExpired(VeilRagError):
    """A node rejected the bearer token (expired or not addressed to it)."""

    def __init__(self, message: str, node_id=None):
        super().__init__(message)
        self.node_id = node_id


class QuorumError(VeilRagError):
    """Fewer than N usable node responses for a secret-shared operation."""

    def __init__(self, message: str, node_id=None):
        super().__init__(message)
        self.node_id = node_id


class AggregationError(QuorumError):
    """A record id did not appear exactly once per node after grouping."""


class CodecError(VeilRagError):
    """Share data that cannot be split, combined or decoded."""
