"""Error taxonomy for knowledge base retrieval."""

from __future__ import annotations


class RetrievalError(Exception):
    """Base class for retrieval pipeline failures."""


class ConfigurationError(RetrievalError):
    """A knowledge base or embedder declaration cannot be used as configured."""


class NotFoundError(RetrievalError):
    """A referenced declaration does not exist."""

    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} not found")


class UnsupportedBackendError(RetrievalError):
    """The vector store declares a backend type this service cannot search."""

    def __init__(self, backend_type: str):
        self.backend_type = backend_type
        super().__init__(f"unknown vectorstore type: {backend_type}")


class BackendCallError(RetrievalError):
    """Embedding or vector store call failed."""


class RetrievalCancelledError(RetrievalError):
    """A blocking step did not finish before its deadline."""


class InvalidInputError(RetrievalError):
    """Chain input values are missing or have the wrong type."""


class AlreadyExistsError(RetrievalError):
    """A declaration with the same namespace and name is already stored."""

    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} already exists")
