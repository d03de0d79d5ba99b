"""
veilrag: privacy-preserving distributed retrieval.

Text-chunk embeddings are stored as secret shares across a cluster of
independent nodes. Nearest-neighbour queries are answered without any node
seeing a plaintext query or a plaintext stored value:

1. The client splits the query embedding into one share per node
2. Each node subtracts its query share from its stored embedding shares
3. The client combines the difference shares and ranks by distance
"""

__version__ = "0.1.0"
