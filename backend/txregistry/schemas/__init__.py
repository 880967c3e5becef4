"""Pydantic schemas."""

from txregistry.schemas.crawl import (
    CrawlError,
    CrawlMetadata,
    LogEntry,
    LogLevel,
    RegistryStatus,
)
from txregistry.schemas.descriptors import (
    FhirVersionEntry,
    MasterDescriptor,
    RegistryDescriptor,
    RegistryEntry,
    ServerEntry,
    parse_master_descriptor,
    parse_registry_descriptor,
)
from txregistry.schemas.registry import (
    FederationSnapshot,
    Registry,
    SecurityMode,
    Server,
    ServerVersion,
    SnapshotStatistics,
)
from txregistry.schemas.resolve import ResolutionResult, ServerMatch

__all__ = [
    # Snapshot tree
    "FederationSnapshot",
    "Registry",
    "SecurityMode",
    "Server",
    "ServerVersion",
    "SnapshotStatistics",
    # Descriptors
    "FhirVersionEntry",
    "MasterDescriptor",
    "RegistryDescriptor",
    "RegistryEntry",
    "ServerEntry",
    "parse_master_descriptor",
    "parse_registry_descriptor",
    # Crawl bookkeeping
    "CrawlError",
    "CrawlMetadata",
    "LogEntry",
    "LogLevel",
    "RegistryStatus",
    # Resolution
    "ResolutionResult",
    "ServerMatch",
]
