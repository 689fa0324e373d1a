"""Note store errors."""


class NoteStoreError(Exception):
    """Raised when the note store cannot be read or written."""
