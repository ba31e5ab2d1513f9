"""Audio -> mel spectrogram -> PNG, and the settings that drive it."""

import math
import sys
from dataclasses import dataclass
from typing import Optional

import numpy as np
from PIL import Image

from synthgram.dsp import (
    WINDOW_TYPES,
    AudioBuffer,
    apply_mel_filterbank,
    compute_stft,
    convert_to_db,
    create_mel_filterbank,
    create_window,
    normalize_spectrogram,
)
from synthgram.errors import ConfigurationError
from synthgram.render import (
    COLORMAPS,
    DEFAULT_COLORMAP,
    draw_gate_line,
    draw_title,
    image_dimensions,
    render_image,
    write_png,
)


@dataclass
class SpectrogramSettings:
    sample_rate: int = 44100
    fft_size: int = 2048
    hop_size: int = 512
    window: str = "hann"
    mel_bands: int = 128
    fmin: float = 0.0
    fmax: Optional[float] = None  # None: sample_rate / 2
    colormap: str = DEFAULT_COLORMAP
    use_db: bool = False
    db_min: float = -80.0
    scale: float = 1.0
    hscale: float = 1.0
    vscale: float = 1.0

    def resolved_fmax(self) -> float:
        return self.fmax if self.fmax is not None else self.sample_rate / 2.0

    def validate(self, warn: bool = True):
        """Raise ConfigurationError on unusable values; warn on degenerate but accepted ones."""
        for name in ("sample_rate", "hop_size", "mel_bands"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        if self.fft_size < 2:
            raise ConfigurationError(f"fft_size must be at least 2, got {self.fft_size}")
        if self.fmin < 0 or (self.fmax is not None and self.fmax < 0):
            raise ConfigurationError(f"fmin/fmax must be >= 0, got {self.fmin}/{self.fmax}")
        if not math.isfinite(self.db_min):
            raise ConfigurationError(f"db_min must be finite, got {self.db_min}")
        for name in ("scale", "hscale", "vscale"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")

        if not warn:
            return
        if self.resolved_fmax() <= self.fmin:
            print(
                f"WARNING: fmax ({self.resolved_fmax():g} Hz) <= fmin ({self.fmin:g} Hz), "
                "mel filters will be empty",
                file=sys.stderr,
            )
        if self.window not in WINDOW_TYPES:
            print(f"WARNING: unknown window '{self.window}', using rectangular", file=sys.stderr)
        if self.colormap not in COLORMAPS:
            print(f"WARNING: unknown colormap '{self.colormap}', using {DEFAULT_COLORMAP}", file=sys.stderr)


@dataclass
class Overlay:
    """Annotations drawn over the raster; they never change its size."""

    title: Optional[str] = None
    gate_time: Optional[float] = None
    duration: Optional[float] = None
    gate_line: bool = True
    gate_color: str = "red"
    gate_style: str = "dashed"


def compute_mel_spectrogram(audio: AudioBuffer, settings: SpectrogramSettings) -> np.ndarray:
    """Normalized mel spectrogram, shape (n_frames, mel_bands)."""
    settings.validate()
    if audio.sample_rate != settings.sample_rate:
        raise ConfigurationError(
            f"audio is sampled at {audio.sample_rate} Hz, settings expect {settings.sample_rate} Hz"
        )

    print("Generating spectrogram...")
    print(f"  Audio samples: {len(audio)}")
    print(f"  FFT size: {settings.fft_size}")
    print(f"  Hop size: {settings.hop_size}")
    print(f"  Mel bands: {settings.mel_bands}")

    window = create_window(settings.fft_size, settings.window)

    print("  Computing STFT...")
    spectrogram = compute_stft(audio.samples, settings.fft_size, settings.hop_size, window)

    print("  Creating mel filterbank...")
    filterbank = create_mel_filterbank(
        settings.mel_bands, settings.fft_size, settings.sample_rate, settings.fmin, settings.resolved_fmax()
    )

    print("  Applying mel filterbank...")
    mel_spec = apply_mel_filterbank(spectrogram, filterbank)

    if settings.use_db:
        print("  Converting to dB scale...")
        convert_to_db(mel_spec, settings.db_min)

    print("  Normalizing...")
    return normalize_spectrogram(mel_spec)


def render_spectrogram(audio: AudioBuffer, settings: SpectrogramSettings) -> Image.Image:
    mel_spec = compute_mel_spectrogram(audio, settings)
    n_frames, n_mels = mel_spec.shape
    width, height = image_dimensions(n_frames, n_mels, settings.scale, settings.hscale, settings.vscale)
    return render_image(mel_spec, width, height, settings.colormap)


def apply_overlay(image: Image.Image, overlay: Overlay):
    if overlay.gate_line and overlay.gate_time is not None and overlay.duration:
        x = int(overlay.gate_time / overlay.duration * image.width)
        if 0 < x < image.width:
            draw_gate_line(image, x, overlay.gate_color, overlay.gate_style)
    if overlay.title:
        draw_title(image, overlay.title)


def generate_spectrogram(
    audio: AudioBuffer, settings: SpectrogramSettings, output_file: str, overlay: Optional[Overlay] = None
) -> Image.Image:
    """Render, annotate and save. Nothing is written unless every step succeeds."""
    image = render_spectrogram(audio, settings)
    if overlay is not None:
        apply_overlay(image, overlay)

    print(f"  Writing PNG: {output_file}")
    write_png(image, output_file)
    print(f"Saved: {output_file}")
    return image
