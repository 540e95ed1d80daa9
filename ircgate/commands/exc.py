"""
Defines exceptions regarding command handling.
"""
__all__ = [
    'UsageError', 'RegistryError', 'DuplicateCommandError', 'UnknownModuleError', 'ModuleLoadedError',
]


class UsageError(Exception):
    """
    Thrown when a command is called with invalid syntax.

    The dispatcher sends the message text back to whoever invoked the command, so it should tell them what to do
    instead.
    """
    pass


class RegistryError(Exception):
    """
    Base class for rejected registry operations.

    :ivar identifier: The name or module identifier involved.
    """
    def __init__(self, message, identifier=None):
        super().__init__(message)
        self.identifier = identifier


class DuplicateCommandError(RegistryError):
    """Thrown when a command name or alternative name is already taken."""
    pass


class UnknownModuleError(RegistryError):
    """Thrown when a module identifier is neither loaded nor known to the catalog."""
    pass


class ModuleLoadedError(RegistryError):
    """Thrown when loading a module that is already loaded."""
    pass
