"""
Embedding Service

Builds embedding functions from embedder declarations.
Uses LangChain Embeddings interface.
"""
import logging

from ..models.knowledge_base import EmbedderConfig
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

OPENAI_PROVIDERS = {"openai", "api"}
HUGGINGFACE_PROVIDERS = {"huggingface", "local"}


class EmbeddingService:
    """Service for creating embedding functions from embedder declarations"""

    def get_embedding_function(self, embedder: EmbedderConfig):
        """
        Get the embedding function an embedder declares.

        Args:
            embedder: Embedder declaration

        Returns:
            LangChain Embeddings instance
        """
        provider = str(embedder.provider or "").strip().lower()
        if provider in OPENAI_PROVIDERS:
            return self._get_api_embeddings(embedder)
        if provider in HUGGINGFACE_PROVIDERS:
            return self._get_local_embeddings(embedder.model, embedder.device)
        raise ConfigurationError(
            f"embedder {embedder.namespace}/{embedder.name}: unsupported provider '{embedder.provider}'"
        )

    @staticmethod
    def provider_type(embedder: EmbedderConfig) -> str:
        provider = str(embedder.provider or "").strip().lower()
        if provider in OPENAI_PROVIDERS:
            return "openai"
        if provider in HUGGINGFACE_PROVIDERS:
            return "huggingface"
        return provider or "unknown"

    def _get_api_embeddings(self, embedder: EmbedderConfig):
        """
        Get API-based embeddings using an OpenAI-compatible endpoint.

        A dedicated base_url makes the API key optional (local
        OpenAI-compatible servers); the public endpoint requires one.
        """
        from langchain_openai import OpenAIEmbeddings

        # model may carry a provider: prefix, strip it
        model_name = embedder.model.split(":", 1)[-1] if ":" in embedder.model else embedder.model
        if not embedder.base_url and not embedder.api_key:
            raise ConfigurationError(
                f"embedder {embedder.namespace}/{embedder.name}: no API key configured"
            )

        kwargs = {
            "model": model_name,
            "api_key": embedder.api_key or "local",
            "check_embedding_ctx_length": False,
        }
        if embedder.base_url:
            kwargs["base_url"] = embedder.base_url
        if embedder.batch_size:
            kwargs["chunk_size"] = embedder.batch_size
        logger.info("Using OpenAI-compatible embeddings model=%s base_url=%s", model_name, embedder.base_url or "default")
        return OpenAIEmbeddings(**kwargs)

    def _get_local_embeddings(self, model_name: str, device: str = "cpu"):
        """
        Get local embeddings using sentence-transformers.

        Args:
            model_name: HuggingFace model name (e.g., all-MiniLM-L6-v2)
            device: Device to run on (cpu, cuda)
        """
        try:
            from langchain_community.embeddings import HuggingFaceEmbeddings
        except ImportError as e:
            raise ImportError(
                "langchain-community and sentence-transformers are required for local embeddings. "
                "Install with: pip install 'kb-retrieval[local]'"
            ) from e

        return HuggingFaceEmbeddings(
            model_name=model_name,
            model_kwargs={"device": device},
        )
