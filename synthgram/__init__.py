"""Synthgram: mel spectrogram images of synthesized notes."""

from synthgram.dsp import AudioBuffer
from synthgram.errors import (
    ConfigurationError,
    EncodingError,
    InsufficientSamplesError,
    InvalidDimensionsError,
    ResourceError,
    SynthgramError,
)
from synthgram.pipeline import (
    Overlay,
    SpectrogramSettings,
    compute_mel_spectrogram,
    generate_spectrogram,
    render_spectrogram,
)

__version__ = "0.1.0"
