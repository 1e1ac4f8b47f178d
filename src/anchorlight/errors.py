"""
Anchorlight Errors

Only these ever reach a caller:
- AlreadyRegisteredError from a direct AnchorBinder.bind() on a bound entry
- CatalogueError when static configuration is invalid at load time

ConfigMissingError names the disabled-engine condition. The engine reports
it (CONFIG_MISSING) instead of raising it. Everything else is reported on
the ReportChannel and handled locally.
"""


class AnchorlightError(Exception):
    """Base class for all engine errors."""


class AlreadyRegisteredError(AnchorlightError):
    """Raised when binding an entry that already owns an anchor."""

    def __init__(self, name: str):
        super().__init__(f"'{name}' is already registered to an anchor")
        self.name = name


class ConfigMissingError(AnchorlightError):
    """A required external dependency was not supplied."""


class CatalogueError(AnchorlightError):
    """Catalogue or step file is malformed (duplicate code/name, bad offset...)."""
