"""Provider adapters for the request pipeline."""

from .base import (
    CachesCapability,
    FilesCapability,
    GenerationAdapter,
    ProviderAdapter,
    StreamingCapability,
    UpstreamCache,
    UpstreamFile,
)

__all__ = [
    "CachesCapability",
    "FilesCapability",
    "GenerationAdapter",
    "ProviderAdapter",
    "StreamingCapability",
    "UpstreamCache",
    "UpstreamFile",
]
