class Pf8Error(Exception):
    """Base class for PF6/PF8 codec errors."""


# Structure
class InvalidFormatError(Pf8Error):
    pass


class CipherKeyError(InvalidFormatError):
    pass


class ArchiveTooLargeError(InvalidFormatError):
    pass


# Bounds/consistency
class CorruptedError(Pf8Error):
    pass


class EntryBoundsError(CorruptedError):
    pass


class EntryOverlapError(CorruptedError):
    pass


class DuplicateEntryError(CorruptedError):
    pass


class IndexSizeError(InvalidFormatError, CorruptedError):
    """Entry count cannot fit in the declared index size."""


# Lookup
class FileNotFoundInArchive(Pf8Error, KeyError):
    def __str__(self):
        return Exception.__str__(self)


# Builder usage
class InvalidPathError(Pf8Error, ValueError):
    pass


class DuplicateNameError(Pf8Error, ValueError):
    pass


class AlreadyFinalizedError(Pf8Error, RuntimeError):
    pass


class SourceChangedError(Pf8Error, OSError):
    """A pending source no longer has the size recorded when it was added."""
