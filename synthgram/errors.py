"""Errors raised by the synthgram pipeline."""


class SynthgramError(Exception):
    """Base class; the command line reports these and exits non-zero."""


class ConfigurationError(SynthgramError):
    pass


class InsufficientSamplesError(SynthgramError):
    pass


class InvalidDimensionsError(SynthgramError):
    pass


class ResourceError(SynthgramError):
    """Transform workspace could not be built, or the output path is unwritable."""


class EncodingError(SynthgramError):
    pass
