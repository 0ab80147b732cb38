"""glean: vocabulary acquisition and spaced-repetition engine for readers."""

from glean.consts import VERSION

__version__ = VERSION
