"""
Error taxonomy for grant storage, filter registration and evaluation.
"""


class DataFilterError(Exception):
    """Base class for every data filter failure."""


class ConfigurationError(DataFilterError):
    """A filter registration is missing, malformed or conflicting."""


class InvalidReferenceError(DataFilterError, ValueError):
    """A principal or basis reference passed to the store cannot be used."""


class PersistenceError(DataFilterError):
    """The backing store could not be read or written."""
