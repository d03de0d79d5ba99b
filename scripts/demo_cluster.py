#!/usr/bin/env python3
"""
Secret-shared retrieval demo.

Ingests a text file into a cluster and answers a question:
1. Chunk the text and embed each chunk
2. Split embeddings and chunks into one share per node and upload them
3. Split the question embedding, run the diff query on every node
4. Combine the differences, rank by distance, combine the top chunks

Without --config the cluster is made of in-process reference nodes.
With --config the nodes listed in the file are used, and provisioned ids are
written back to it.
"""
import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

import httpx

# Add src to path for development
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from veilrag.client.auth import Authenticator
from veilrag.client.search import RetrievalClient
from veilrag.config import ClusterConfig
from veilrag.server.api import create_node_app
from veilrag.shared.chunking import create_chunks, load_file, split_paragraphs
from veilrag.shared.embeddings import EmbeddingModel

SAMPLE_TEXT = """Berlin is the capital and largest city of Germany.

Paris is the capital and most populous city of France.

Rome is the capital city of Italy and was the centre of the Roman Empire.

Madrid is the capital and most populous city of Spain.

Tokyo is the capital of Japan and one of the largest cities in the world."""


def local_cluster(num_nodes: int, secret_key: str):
    """In-process nodes and the transports that reach them."""
    public_key = Authenticator(secret_key).public_key
    nodes, mounts = [], {}
    for i in range(num_nodes):
        node_id = f"node{i + 1}"
        url = f"http://{node_id}.local"
        mounts[url] = httpx.ASGITransport(app=create_node_app(node_id, public_key, org="demo"))
        nodes.append({"url": url, "node_id": node_id, "org": "demo"})
    return ClusterConfig(nodes=nodes, secret_key=secret_key), mounts


async def run_demo(args) -> None:
    print("=" * 70)
    print("veilrag - secret-shared retrieval")
    print("=" * 70)

    if args.config:
        config = ClusterConfig.from_file(args.config, secret_key=args.secret_key)
        mounts = {}
    else:
        config, mounts = local_cluster(args.nodes, args.secret_key)
    print(f"\nCluster: {len(config.nodes)} nodes")

    paragraphs = load_file(args.file) if args.file else split_paragraphs(SAMPLE_TEXT)
    chunks = create_chunks(paragraphs, chunk_size=args.chunk_size, overlap=args.overlap)
    print(f"Chunks:  {len(chunks)}")

    print(f"\nLoading embedding model {args.model}...")
    embedder = EmbeddingModel(args.model)

    async with httpx.AsyncClient(mounts=mounts, timeout=config.request_timeout) as http:
        client = RetrievalClient(config, embedder, client=http)

        print("\n[1] Issuing credentials and provisioning...")
        await client.setup()
        print(f"    schema:     {client.registry.schema_id}")
        print(f"    diff query: {client.registry.diff_query_id}")
        if args.config:
            client.provisioned_config().to_file(args.config)

        print("\n[2] Uploading shares...")
        ids = await client.ingest(chunks)
        print(f"    {len(ids)} records stored on every node")

        print(f"\n[3] Query: {args.question!r}")
        results, timing = await client.query(args.question, top_k=args.top_k, verbose=True)

    print("\nResults:")
    for r in results:
        print(f"  {r.rank}. [{r.distance:.4f}] {r.chunk}")

    print("\nTiming:")
    for name, ms in timing.items():
        print(f"  {name:<10} {ms:8.2f}ms")


def main():
    parser = argparse.ArgumentParser(description="Demo secret-shared retrieval")
    parser.add_argument("--config", help="Cluster config JSON (default: local nodes)")
    parser.add_argument("--nodes", type=int, default=3, help="Number of local nodes")
    parser.add_argument(
        "--secret-key",
        default=os.getenv("VEILRAG_SECRET_KEY", "11" * 32),
        help="Hex secp256k1 secret key for node credentials",
    )
    parser.add_argument("--file", help="Text file to ingest (default: built-in sample)")
    parser.add_argument("--chunk-size", type=int, default=50)
    parser.add_argument("--overlap", type=int, default=10)
    parser.add_argument("--model", default="sentence-transformers/all-MiniLM-L6-v2")
    parser.add_argument("--question", default="What is the capital of France?")
    parser.add_argument("--top-k", type=int, default=2)
    parser.add_argument("--verbose", "-v", action="store_true", help="Log node traffic")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    asyncio.run(run_demo(args))


if __name__ == "__main__":
    main()
