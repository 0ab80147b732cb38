"""Error kinds surfaced by the vocabulary engine."""


class GleanError(Exception):
    """Base class for every error raised by glean."""


class NotFound(GleanError):
    """A word addressed by (word, language) is not in the vocabulary."""

    def __init__(self, word: str, language: str):
        self.word = word
        self.language = language
        super().__init__(f"Word '{word}' ({language}) not found in vocabulary")


class InvalidRating(GleanError):
    """A rating outside Again/Hard/Good/Easy was supplied."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(
            f"Invalid rating {value!r}. Must be one of: again, hard, good, easy (1-4)"
        )


class StorageFailure(GleanError):
    """The persistence layer failed a read or write."""


class SessionStateError(GleanError):
    """An operation was attempted in a review session state that does not allow it."""
