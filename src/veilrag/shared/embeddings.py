"""
Embedding providers.

The retrieval client only needs an object with `embed(texts) -> (n, d)`
array. EmbeddingModel wraps sentence-transformers for real use.
"""
import numpy as np
from typing import List, Optional, Protocol, Union


class Embedder(Protocol):
    def embed(self, texts: Union[str, List[str]]) -> np.ndarray:
        ...


class EmbeddingModel:
    """
    Wrapper for sentence-transformers embedding models.

    Supports various pre-trained models like:
    - all-MiniLM-L6-v2 (384 dim, fast)
    - all-mpnet-base-v2 (768 dim, better quality)
    - paraphrase-MiniLM-L3-v2 (384 dim, fastest)
    """

    # Model presets with their dimensions
    PRESETS = {
        "fast": "paraphrase-MiniLM-L3-v2",       # 384 dim, fastest
        "balanced": "all-MiniLM-L6-v2",           # 384 dim, good balance
        "quality": "all-mpnet-base-v2",           # 768 dim, best quality
    }

    def __init__(
        self,
        model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
        device: Optional[str] = None,
        normalize: bool = True,
    ):
        """
        Initialize embedding model.

        Args:
            model_name: HuggingFace model name or preset ("fast", "balanced", "quality")
            device: Device to use ("cpu", "cuda", "mps", or None for auto)
            normalize: Whether to L2-normalize embeddings
        """
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise ImportError(
                "sentence-transformers is required. "
                "Install with: pip install veilrag[embeddings]"
            )

        if model_name in self.PRESETS:
            model_name = self.PRESETS[model_name]

        self.model_name = model_name
        self.normalize = normalize
        self._model = SentenceTransformer(model_name, device=device)
        self._dimension = self._model.get_sentence_embedding_dimension()

    @property
    def dimension(self) -> int:
        """Get embedding dimension."""
        return self._dimension

    def embed(
        self,
        texts: Union[str, List[str]],
        batch_size: int = 32,
        show_progress: bool = False,
    ) -> np.ndarray:
        """
        Embed text(s) into vectors.

        Args:
            texts: Single text or list of texts
            batch_size: Batch size for encoding
            show_progress: Show progress bar

        Returns:
            Embeddings as numpy array of shape (n, dimension)
        """
        if isinstance(texts, str):
            texts = [texts]

        embeddings = self._model.encode(
            texts,
            batch_size=batch_size,
            show_progress_bar=show_progress,
            normalize_embeddings=self.normalize,
            convert_to_numpy=True,
        )

        return embeddings.astype(np.float32)
