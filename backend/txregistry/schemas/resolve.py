"""Pydantic schemas for resolution results."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from txregistry.schemas.registry import SecurityMode


class ServerMatch(BaseModel):
    """A server able to answer a code system or value set query.

    ``address`` is the endpoint of the matching FHIR version, not the
    server's home page.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    registry_code: str
    registry_name: str
    server_code: str
    server_name: str
    access_info: str = ""
    address: str
    fhir_version: str
    security: SecurityMode = SecurityMode.OPEN
    software: str = ""
    usage_list: list[str] = Field(default_factory=list)


class ResolutionResult(BaseModel):
    """Servers partitioned into authoritative and hosting candidates."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    authoritative: list[ServerMatch] = Field(default_factory=list)
    candidates: list[ServerMatch] = Field(default_factory=list)
