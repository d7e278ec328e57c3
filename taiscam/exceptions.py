"""
Exceptions raised by taiscam.

Every failure of the pipeline is a ``ScamError``; ``exit_code`` is the process
status the command line tool terminates with.
"""


class ScamError(RuntimeError):
    """Base class for orchestration failures."""

    exit_code = 1


class UnsupportedOption(ScamError, ValueError):
    """A configuration value is outside its allowed set."""


class DirectoryCreateFailed(ScamError):
    """A build or run directory could not be created."""


class CopyFailed(ScamError):
    """The provenance backup into the build directory failed."""


class ConfigureFailed(ScamError):
    """The CAM configure tool returned non-zero."""


class CompileFailed(ScamError):
    """The parallel make returned non-zero or produced no binary."""


class NamelistBuildFailed(ScamError):
    """build-namelist returned non-zero or produced no namelists."""


class RunFailed(ScamError):
    """The SCAM binary returned non-zero."""

    exit_code = 99
