"""Exception hierarchy for the registry engine."""


class RegistryError(Exception):
    """Base class for all registry engine errors."""


class FetchError(RegistryError):
    """A remote document could not be fetched or parsed."""


class DescriptorFormatError(RegistryError):
    """A master or registry descriptor has an unsupported shape or version."""


class UnsupportedVersionError(RegistryError):
    """A server declares a FHIR version no probe strategy handles."""


class ResolutionRequestError(RegistryError):
    """A resolution request is missing parameters or names an invalid version."""


class PersistenceError(RegistryError):
    """The persisted snapshot could not be read or written."""
