"""Shared utilities and protocol definitions."""
from veilrag.shared.chunking import create_chunks, load_file
from veilrag.shared.errors import (
    AggregationError,
    AuthExpired,
    CodecError,
    ConfigurationError,
    ProvisioningError,
    QuorumError,
    VeilRagError,
)
from veilrag.shared.pipeline import DIFFERENCE_PIPELINE, Pipeline
from veilrag.shared.protocol import EncryptedRecord, Node, SearchResult
from veilrag.shared.utils import Timer, euclidean_distance, find_closest_chunks

__all__ = [
    "create_chunks",
    "load_file",
    "AggregationError",
    "AuthExpired",
    "CodecError",
    "ConfigurationError",
    "ProvisioningError",
    "QuorumError",
    "VeilRagError",
    "DIFFERENCE_PIPELINE",
    "Pipeline",
    "EncryptedRecord",
    "Node",
    "SearchResult",
    "Timer",
    "euclidean_distance",
    "find_closest_chunks",
]
