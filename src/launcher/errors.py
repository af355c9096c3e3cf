"""
Error kinds raised by the Saturn executor launcher.
"""


class LauncherError(Exception):
    """Base class for launcher failures."""
    pass


class ArgumentError(LauncherError):
    """Invalid command line."""
    pass


class MissingValueError(ArgumentError):
    """An option was given without a following non-blank value."""

    def __init__(self, param_name: str):
        super().__init__(f"Please set the value of parameter: {param_name}")
        self.param_name = param_name


class MissingRequiredError(ArgumentError):
    """A mandatory parameter is blank or absent."""

    def __init__(self, param_name: str):
        super().__init__(f"Please set the {param_name} parameter")
        self.param_name = param_name


class ScanFailedError(LauncherError):
    """Filesystem scan of a library root failed."""
    pass


class DomainConstructionError(LauncherError):
    """An artefact could not be registered with a loading domain."""
    pass


class UnitNotFoundError(LauncherError):
    """A named unit is not resolvable from a loading domain."""
    pass


class DomainReleasedError(LauncherError):
    """Lookup attempted on a released loading domain."""
    pass


class ReleaseFailedError(LauncherError):
    """Releasing a loading domain failed."""
    pass


class RuntimeNotFoundError(LauncherError):
    """The runtime entry is not resolvable from the runtime domain."""
    pass


class RuntimeHandoffError(LauncherError):
    """The runtime raised while being built or started."""
    pass


class UnknownNamespaceError(LauncherError):
    """The namespace is not registered with the coordination cluster."""
    pass
