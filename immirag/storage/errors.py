"""
Storage Errors
==============

Only failures of the primary retrieval channel cross the storage boundary.
Entity search, relationship expansion and reranking degrade locally instead.
"""


class RetrievalError(RuntimeError):
    """Base class for retrieval failures surfaced to callers."""


class VectorSearchError(RetrievalError):
    """
    The vector index (or the query embedding feeding it) is unavailable.

    Callers receiving this error have no retrieved context at all and should
    disable knowledge-base specific prompting for the request.
    """
