"""
errors.py — Exception hierarchy for mediatool.

Two families:
  - Item-level conditions (bad filename, unknown stream type, archive or
    launch failures) are caught at the stage boundary and recorded on the
    item as a failure tag.
  - Logic defects (malformed simplified path, unparseable probe metadata,
    empty tool output) are allowed to escape and abort the run.
"""


class MediaToolError(Exception):
    """Base class for every error raised by mediatool."""


class SimplifiedPathError(MediaToolError, ValueError):
    """A simplified name still contains a directory separator."""


class FilenameClassificationError(MediaToolError):
    """The filename heuristics produced a result that cannot be trusted."""


class ProbeMetadataError(MediaToolError):
    """ffprobe output could not be parsed or lists no streams."""


class UnknownStreamTypeError(MediaToolError):
    """A stream has a codec type outside video/audio/subtitle/data."""


class ArchiveError(MediaToolError):
    """An archive could not be opened or one of its parts is missing."""


class ProcessError(MediaToolError):
    pass


class ProcessLaunchError(ProcessError):
    """The external executable could not be spawned."""


class EmptyOutputError(ProcessError):
    """The external tool finished but produced no output at all."""


class UpdateError(MediaToolError):
    pass
