"""Pydantic schemas for the crawled federation snapshot.

The snapshot is a tree: registries own servers, servers own one entry per
FHIR version endpoint. Every node is frozen; a crawl builds a fresh tree and
the previous one is simply dropped once the new one is installed.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class SecurityMode(str, Enum):
    """How a server version is accessed."""

    OPEN = "open"
    API_KEY = "api-key"


class _SnapshotNode(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ServerVersion(_SnapshotNode):
    """One FHIR-major-version endpoint of a terminology server."""

    version: str = Field(description="FHIR version, as reported by the server when probed")
    address: str = ""
    security: SecurityMode = SecurityMode.OPEN
    software: str = ""
    code_systems: list[str] = Field(default_factory=list)
    value_sets: list[str] = Field(default_factory=list)
    last_success: datetime | None = None
    last_tat: str = ""
    error: str | None = None

    @field_validator("code_systems", "value_sets")
    @classmethod
    def _sorted_unique(cls, values: list[str]) -> list[str]:
        return sorted(set(values))

    @model_validator(mode="after")
    def _check_probe_outcome(self) -> "ServerVersion":
        if (self.error is None) == (self.last_success is None):
            raise ValueError("exactly one of error and lastSuccess must be set")
        return self


class Server(_SnapshotNode):
    """A terminology service listed by a registry."""

    code: str = ""
    name: str = ""
    address: str = ""
    access_info: str = ""
    auth_cs_list: list[str] = Field(default_factory=list, alias="authCSList")
    auth_vs_list: list[str] = Field(default_factory=list, alias="authVSList")
    usage_list: list[str] = Field(default_factory=list)
    versions: list[ServerVersion] = Field(default_factory=list)

    @field_validator("auth_cs_list", "auth_vs_list", "usage_list")
    @classmethod
    def _sorted(cls, values: list[str]) -> list[str]:
        return sorted(values)


class Registry(_SnapshotNode):
    """A federation member publishing a list of servers."""

    code: str = ""
    name: str = ""
    authority: str = ""
    address: str = ""
    error: str | None = None
    servers: list[Server] = Field(default_factory=list)


class SnapshotStatistics(_SnapshotNode):
    """Summary counts over a snapshot."""

    registry_count: int = 0
    server_count: int = 0
    version_count: int = 0
    code_system_count: int = 0
    value_set_count: int = 0


class FederationSnapshot(_SnapshotNode):
    """Root of one complete crawl result."""

    address: str = ""
    last_run: datetime | None = None
    outcome: str = ""
    documentation: str = ""
    registries: list[Registry] = Field(default_factory=list)

    def statistics(self) -> SnapshotStatistics:
        servers = [s for r in self.registries for s in r.servers]
        versions = [v for s in servers for v in s.versions]
        return SnapshotStatistics(
            registry_count=len(self.registries),
            server_count=len(servers),
            version_count=len(versions),
            code_system_count=sum(len(v.code_systems) for v in versions),
            value_set_count=sum(len(v.value_sets) for v in versions),
        )
