"""Signal analysis: windows, short-time spectra, mel filterbank, amplitude mapping."""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from synthgram.errors import ConfigurationError, InsufficientSamplesError, ResourceError

WINDOW_TYPES = ["rectangular", "hann", "hamming", "blackman"]
FRAME_BLOCK = 256  # frames transformed per call into the shared workspace


@dataclass(frozen=True)
class AudioBuffer:
    """Mono samples plus their sample rate. The sample array is made read-only."""

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        samples = np.array(self.samples, dtype=np.float32).ravel()
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        return len(self) / self.sample_rate if self.sample_rate > 0 else 0.0


def create_window(size: int, window_type: str = "hann") -> np.ndarray:
    """Return `size` window coefficients; unknown types give a rectangular window.

    Sizes below 2 have no defined shape and must be rejected by the caller.
    """
    x = np.arange(size, dtype=np.float64) / (size - 1)

    if window_type == "hann":
        return 0.5 * (1.0 - np.cos(2.0 * np.pi * x))
    if window_type == "hamming":
        return 0.54 - 0.46 * np.cos(2.0 * np.pi * x)
    if window_type == "blackman":
        return 0.42 - 0.5 * np.cos(2.0 * np.pi * x) + 0.08 * np.cos(4.0 * np.pi * x)
    return np.ones(size, dtype=np.float64)


def frame_count(n_samples: int, fft_size: int, hop_size: int) -> int:
    if n_samples < fft_size:
        return 0
    return (n_samples - fft_size) // hop_size + 1


class FrameTransform:
    """Forward real FFT workspace shared by every frame of one analysis run.

    Use as a context manager: the windowed-frame buffer is allocated on
    entry and dropped on exit, whether the analysis finished or raised.
    """

    def __init__(self, window: np.ndarray, block_frames: int = FRAME_BLOCK):
        self.window = np.asarray(window, dtype=np.float64)
        self.fft_size = int(self.window.shape[0])
        self.n_bins = self.fft_size // 2 + 1
        self.block_frames = block_frames
        self._buffer = None

    def __enter__(self):
        try:
            self._buffer = np.empty((self.block_frames, self.fft_size), dtype=np.float64)
        except (MemoryError, ValueError) as exc:
            raise ResourceError(
                f"could not allocate FFT workspace for fft_size={self.fft_size}: {exc}"
            ) from exc
        return self

    def __exit__(self, exc_type, exc, tb):
        self._buffer = None
        return False

    def magnitudes(self, frames: np.ndarray) -> np.ndarray:
        """Window up to `block_frames` frames and return their one-sided magnitudes."""
        if self._buffer is None:
            raise ResourceError("FFT workspace used outside of its context")
        segment = self._buffer[: frames.shape[0]]
        np.multiply(frames, self.window, out=segment)
        return np.abs(np.fft.rfft(segment, axis=1))


def compute_stft(audio, fft_size: int, hop_size: int, window: np.ndarray) -> np.ndarray:
    """Magnitude spectrogram, shape (n_frames, fft_size // 2 + 1)."""
    samples = np.asarray(audio, dtype=np.float64).ravel()

    if fft_size <= 0 or hop_size <= 0:
        raise ConfigurationError(
            f"fft_size and hop_size must be positive (got {fft_size}, {hop_size})"
        )
    if len(window) != fft_size:
        raise ConfigurationError(f"window has {len(window)} points, expected {fft_size}")
    if samples.shape[0] < fft_size:
        raise InsufficientSamplesError(
            f"audio has {samples.shape[0]} samples, fewer than fft_size={fft_size}"
        )

    n_frames = frame_count(samples.shape[0], fft_size, hop_size)
    frames = sliding_window_view(samples, fft_size)[::hop_size]
    spectrogram = np.empty((n_frames, fft_size // 2 + 1), dtype=np.float64)

    with FrameTransform(window) as transform:
        for start in range(0, n_frames, transform.block_frames):
            stop = min(start + transform.block_frames, n_frames)
            spectrogram[start:stop] = transform.magnitudes(frames[start:stop])

    return spectrogram


def hz_to_mel(hz):
    return 2595.0 * np.log10(1.0 + np.asarray(hz, dtype=np.float64) / 700.0)


def mel_to_hz(mel):
    return 700.0 * (10.0 ** (np.asarray(mel, dtype=np.float64) / 2595.0) - 1.0)


@dataclass
class MelFilterbank:
    """Triangular filters over FFT bins.

    `weights` is dense (n_mels, n_bins); filter m is nonzero only on
    bins [left[m], right[m]) and peaks at center[m].
    """

    weights: np.ndarray
    left: np.ndarray
    center: np.ndarray
    right: np.ndarray

    @property
    def n_mels(self) -> int:
        return int(self.weights.shape[0])

    @property
    def n_bins(self) -> int:
        return int(self.weights.shape[1])


def mel_bin_points(n_mels: int, fft_size: int, sample_rate: int, fmin: float, fmax: float) -> np.ndarray:
    """The n_mels + 2 filter edges as FFT bin indices."""
    mel_points = np.linspace(hz_to_mel(fmin), hz_to_mel(fmax), n_mels + 2)
    hz_points = mel_to_hz(mel_points)
    return np.floor((fft_size + 1) * hz_points / sample_rate).astype(np.int64)


def create_mel_filterbank(
    n_mels: int, fft_size: int, sample_rate: int, fmin: float = 0.0, fmax: Optional[float] = None
) -> MelFilterbank:
    """
    Build n_mels triangular filters spaced evenly on the mel scale.

    Filter i rises over [b[i], b[i+1]) and falls over [b[i+1], b[i+2]),
    where b are the bin edges from `mel_bin_points`. An empty slope is
    skipped, so filters narrower than a bin come out as a single-sided
    ramp or all zero. fmax <= fmin is accepted and yields such collapsed
    filters. Edges beyond the last bin are cut at the Nyquist bin.
    """
    if fmax is None:
        fmax = sample_rate / 2.0
    n_bins = fft_size // 2 + 1
    bins = mel_bin_points(n_mels, fft_size, sample_rate, fmin, fmax)

    weights = np.zeros((n_mels, n_bins), dtype=np.float64)
    left, center, right = bins[:-2], bins[1:-1], bins[2:]

    for i in range(n_mels):
        lo, mid, hi = int(left[i]), int(center[i]), int(right[i])

        # Rising slope
        if mid > lo:
            j = np.arange(max(lo, 0), min(mid, n_bins))
            weights[i, j] = (j - lo) / (mid - lo)

        # Falling slope
        if hi > mid:
            j = np.arange(max(mid, 0), min(hi, n_bins))
            weights[i, j] = (hi - j) / (hi - mid)

    return MelFilterbank(
        weights=weights,
        left=np.clip(left, 0, n_bins),
        center=np.clip(center, 0, n_bins),
        right=np.clip(right, 0, n_bins),
    )


def apply_mel_filterbank(spectrogram: np.ndarray, filterbank: MelFilterbank) -> np.ndarray:
    """Project (n_frames, n_bins) magnitudes to (n_frames, n_mels) band energies."""
    spectrogram = np.asarray(spectrogram, dtype=np.float64)
    if spectrogram.shape[1] != filterbank.n_bins:
        raise ConfigurationError(
            f"spectrogram has {spectrogram.shape[1]} bins, filterbank expects {filterbank.n_bins}"
        )

    mel_spec = np.zeros((spectrogram.shape[0], filterbank.n_mels), dtype=np.float64)
    for m in range(filterbank.n_mels):
        lo, hi = int(filterbank.left[m]), int(filterbank.right[m])
        if hi > lo:
            mel_spec[:, m] = spectrogram[:, lo:hi] @ filterbank.weights[m, lo:hi]
    return mel_spec


def convert_to_db(mel_spec: np.ndarray, db_min: float = -80.0) -> np.ndarray:
    """In place: 20*log10(v) floored at db_min; non-positive values become db_min."""
    positive = mel_spec > 0
    mel_spec[positive] = np.maximum(20.0 * np.log10(mel_spec[positive]), db_min)
    mel_spec[~positive] = db_min
    return mel_spec


def normalize_spectrogram(mel_spec: np.ndarray) -> np.ndarray:
    """In place min-max scaling to [0, 1]. A constant spectrogram is left as is."""
    min_val = float(mel_spec.min())
    max_val = float(mel_spec.max())
    value_range = max_val - min_val
    if value_range > 0:
        mel_spec -= min_val
        mel_spec /= value_range
    return mel_spec
