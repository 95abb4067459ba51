class NotescanError(Exception):
    """Base class for every error raised by the color-reduction engine."""


class InvalidParameterError(NotescanError, ValueError):
    """A tunable or argument is outside its valid range (e.g. a shift of 8 or more)."""


class EmptyInputError(NotescanError, ValueError):
    """An operation that needs at least one pixel was given none."""


class UnsupportedColorFormatError(NotescanError, ValueError):
    """The source image or color uses a pixel representation we cannot decode."""


class PaletteUnavailableError(NotescanError, RuntimeError):
    """Indexed encoding was requested before a palette was produced."""
