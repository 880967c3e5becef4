"""Pydantic schemas for the master and registry descriptor documents.

Both documents are published as JSON by the federation:

- the master descriptor lists registries (``registries[]``)
- each registry descriptor lists servers (``servers[]``)

Only ``formatVersion == "1"`` is understood.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from txregistry.errors import DescriptorFormatError

SUPPORTED_FORMAT_VERSION = "1"


class _Descriptor(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RegistryEntry(_Descriptor):
    """A registry as listed in the master descriptor."""

    code: str | None = None
    name: str | None = None
    authority: str | None = None
    url: str | None = None


class FhirVersionEntry(_Descriptor):
    """One declared FHIR version endpoint of a server."""

    version: str = ""
    url: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> Any:
        # Registries sometimes publish "4" as a bare number
        if isinstance(value, (int, float)):
            return str(value)
        return value if value is not None else ""


class ServerEntry(_Descriptor):
    """A server as listed in a registry descriptor."""

    code: str | None = None
    name: str | None = None
    url: str | None = None
    access_info: str | None = None
    authoritative: list[str] = Field(default_factory=list)
    authoritative_valuesets: list[str] = Field(
        default_factory=list, alias="authoritative-valuesets"
    )
    usage: list[str] = Field(default_factory=list)
    fhir_versions: list[FhirVersionEntry] = Field(default_factory=list, alias="fhirVersions")

    @field_validator(
        "authoritative", "authoritative_valuesets", "usage", "fhir_versions", mode="before"
    )
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class MasterDescriptor(_Descriptor):
    documentation: str | None = None
    registries: list[RegistryEntry] = Field(default_factory=list)


class RegistryDescriptor(_Descriptor):
    documentation: str | None = None
    servers: list[ServerEntry] = Field(default_factory=list)


def _check_format_version(data: Any, what: str) -> None:
    if not isinstance(data, dict):
        raise DescriptorFormatError(f"{what} is not a JSON object")
    declared = data.get("formatVersion")
    if declared is None or str(declared) != SUPPORTED_FORMAT_VERSION:
        raise DescriptorFormatError(
            f"{what} version is {declared} not \"{SUPPORTED_FORMAT_VERSION}\""
        )


def parse_master_descriptor(data: Any) -> MasterDescriptor:
    """Validate a master descriptor document.

    Raises:
        DescriptorFormatError: Wrong formatVersion or malformed structure.
    """
    _check_format_version(data, "Registries")
    try:
        return MasterDescriptor.model_validate(data)
    except ValidationError as e:
        raise DescriptorFormatError(f"Malformed master descriptor: {e}") from e


def parse_registry_descriptor(data: Any, address: str) -> RegistryDescriptor:
    """Validate a registry descriptor document fetched from ``address``.

    Raises:
        DescriptorFormatError: Wrong formatVersion or malformed structure.
    """
    _check_format_version(data, f"Registry at {address}")
    try:
        return RegistryDescriptor.model_validate(data)
    except ValidationError as e:
        raise DescriptorFormatError(f"Malformed registry descriptor at {address}: {e}") from e
