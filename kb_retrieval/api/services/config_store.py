"""
Declaration store

YAML-backed store for knowledge base, embedder, vector store and retriever
declarations. Exposes the read contract used by retriever resolution and the
write operations used by knowledge base management.
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional

import aiofiles
import yaml

from ..models.knowledge_base import (
    EmbedderConfig,
    KnowledgeBase,
    KnowledgeBasesConfig,
    RetrieverConfig,
    VectorStoreConfig,
)
from ..paths import data_state_dir, ensure_local_file, resolve_repo_path
from .errors import AlreadyExistsError, NotFoundError

logger = logging.getLogger(__name__)


class ConfigStore:
    """Declaration store backed by a single YAML file"""
    _io_retry_attempts = 8
    _io_retry_delay_seconds = 0.1
    # Shared cache by config path so short-lived store instances can reuse parsed YAML.
    _config_cache: Dict[str, KnowledgeBasesConfig] = {}
    _config_cache_mtime_ns: Dict[str, int] = {}
    # One writer lock per config path, shared by every store instance on that path.
    _mutation_locks: Dict[str, asyncio.Lock] = {}

    def __init__(self, config_path: Optional[Path] = None):
        if config_path is None:
            config_path = data_state_dir() / "knowledge_bases_config.yaml"
        self.config_path = resolve_repo_path(Path(config_path))
        # Protect YAML read/write in-process.
        self._config_lock = asyncio.Lock()
        self._ensure_config_exists()
        # Protect load-modify-save sequences so concurrent writers do not lose updates.
        self.mutation_lock = self._mutation_locks.setdefault(self._cache_key(), asyncio.Lock())

    def _ensure_config_exists(self):
        """Ensure configuration file exists, create default if not"""
        default_config = KnowledgeBasesConfig().model_dump(mode='json')
        ensure_local_file(
            local_path=self.config_path,
            initial_text=yaml.safe_dump(default_config, allow_unicode=True, sort_keys=False),
        )

    def _cache_key(self) -> str:
        try:
            return str(self.config_path.resolve()).lower()
        except OSError:
            return str(self.config_path).lower()

    async def load_config(self) -> KnowledgeBasesConfig:
        """Load configuration file"""
        last_error: Exception | None = None
        for attempt in range(self._io_retry_attempts):
            try:
                async with self._config_lock:
                    cache_key = self._cache_key()
                    mtime_ns = int(self.config_path.stat().st_mtime_ns)
                    cached = self._config_cache.get(cache_key)
                    cached_mtime = self._config_cache_mtime_ns.get(cache_key)
                    if cached is not None and cached_mtime == mtime_ns:
                        return cached.model_copy(deep=True)

                    async with aiofiles.open(self.config_path, 'r', encoding='utf-8') as f:
                        content = await f.read()
                data = yaml.safe_load(content) or {}
                config = KnowledgeBasesConfig(**data)
                async with self._config_lock:
                    self._config_cache[cache_key] = config.model_copy(deep=True)
                    self._config_cache_mtime_ns[cache_key] = mtime_ns
                return config.model_copy(deep=True)
            except (OSError, yaml.YAMLError) as e:
                last_error = e
                if attempt + 1 >= self._io_retry_attempts:
                    break
                await asyncio.sleep(self._io_retry_delay_seconds * (attempt + 1))
        raise RuntimeError(f"Failed to load declaration store: {last_error}") from last_error

    async def save_config(self, config: KnowledgeBasesConfig):
        """Save configuration file with atomic replace and retry."""
        content = yaml.safe_dump(
            config.model_dump(mode='json'),
            allow_unicode=True,
            sort_keys=False
        )
        temp_path = self.config_path.with_suffix('.yaml.tmp')
        last_error: Exception | None = None
        for attempt in range(self._io_retry_attempts):
            try:
                async with self._config_lock:
                    async with aiofiles.open(temp_path, 'w', encoding='utf-8') as f:
                        await f.write(content)
                    os.replace(str(temp_path), str(self.config_path))
                    cache_key = self._cache_key()
                    self._config_cache[cache_key] = config.model_copy(deep=True)
                    self._config_cache_mtime_ns[cache_key] = int(self.config_path.stat().st_mtime_ns)
                return
            except OSError as e:
                last_error = e
                if attempt + 1 >= self._io_retry_attempts:
                    break
                await asyncio.sleep(self._io_retry_delay_seconds * (attempt + 1))
            finally:
                try:
                    temp_path.unlink(missing_ok=True)
                except OSError:
                    pass
        raise RuntimeError(f"Failed to save declaration store: {last_error}") from last_error

    # ==================== Reads ====================

    async def get_knowledge_base(self, namespace: str, name: str) -> KnowledgeBase:
        config = await self.load_config()
        for kb in config.knowledge_bases:
            if kb.namespace == namespace and kb.name == name:
                return kb
        raise NotFoundError("knowledgebase", namespace, name)

    async def list_knowledge_bases(self, namespace: Optional[str] = None) -> List[KnowledgeBase]:
        config = await self.load_config()
        return [kb for kb in config.knowledge_bases if namespace is None or kb.namespace == namespace]

    async def get_embedder(self, namespace: str, name: str) -> EmbedderConfig:
        config = await self.load_config()
        for embedder in config.embedders:
            if embedder.namespace == namespace and embedder.name == name:
                return embedder
        raise NotFoundError("embedder", namespace, name)

    async def get_vector_store(self, namespace: str, name: str) -> VectorStoreConfig:
        config = await self.load_config()
        for store in config.vector_stores:
            if store.namespace == namespace and store.name == name:
                return store
        raise NotFoundError("vectorstore", namespace, name)

    async def get_retriever(self, namespace: str, name: str) -> RetrieverConfig:
        config = await self.load_config()
        for retriever in config.retrievers:
            if retriever.namespace == namespace and retriever.name == name:
                return retriever
        raise NotFoundError("knowledgebaseretriever", namespace, name)

    # ==================== Writes ====================

    async def add_knowledge_base(self, kb: KnowledgeBase):
        """Add a new knowledge base"""
        async with self.mutation_lock:
            config = await self.load_config()
            if any(k.namespace == kb.namespace and k.name == kb.name for k in config.knowledge_bases):
                raise AlreadyExistsError("knowledgebase", kb.namespace, kb.name)
            config.knowledge_bases.append(kb)
            await self.save_config(config)

    async def update_knowledge_base(
        self,
        namespace: str,
        name: str,
        mutate: Callable[[KnowledgeBase], None],
    ) -> KnowledgeBase:
        """Apply mutate to a stored knowledge base and save it in one locked step"""
        async with self.mutation_lock:
            config = await self.load_config()
            for kb in config.knowledge_bases:
                if kb.namespace == namespace and kb.name == name:
                    mutate(kb)
                    await self.save_config(config)
                    return kb
        raise NotFoundError("knowledgebase", namespace, name)

    async def delete_knowledge_bases(self, namespace: str, predicate: Callable[[KnowledgeBase], bool]) -> int:
        """Delete knowledge bases in a namespace matching predicate"""
        async with self.mutation_lock:
            config = await self.load_config()
            kept = [
                kb for kb in config.knowledge_bases
                if not (kb.namespace == namespace and predicate(kb))
            ]
            deleted = len(config.knowledge_bases) - len(kept)
            if deleted:
                config.knowledge_bases = kept
                await self.save_config(config)
        if deleted:
            logger.info("Deleted %d knowledge base(s) in namespace %s", deleted, namespace)
        return deleted

    async def upsert_embedder(self, embedder: EmbedderConfig):
        async with self.mutation_lock:
            config = await self.load_config()
            config.embedders = [
                e for e in config.embedders
                if not (e.namespace == embedder.namespace and e.name == embedder.name)
            ]
            config.embedders.append(embedder)
            await self.save_config(config)

    async def upsert_vector_store(self, store: VectorStoreConfig):
        async with self.mutation_lock:
            config = await self.load_config()
            config.vector_stores = [
                s for s in config.vector_stores
                if not (s.namespace == store.namespace and s.name == store.name)
            ]
            config.vector_stores.append(store)
            await self.save_config(config)

    async def upsert_retriever(self, retriever: RetrieverConfig):
        async with self.mutation_lock:
            config = await self.load_config()
            config.retrievers = [
                r for r in config.retrievers
                if not (r.namespace == retriever.namespace and r.name == retriever.name)
            ]
            config.retrievers.append(retriever)
            await self.save_config(config)
