"""Gated oscillator voice and the controls it exposes (gate, freq, gain)."""

import enum
import sys
from dataclasses import dataclass
from typing import Optional

import numpy as np

from synthgram.dsp import AudioBuffer
from synthgram.errors import ConfigurationError


class WidgetKind(enum.Enum):
    BUTTON = "button"
    CHECKBOX = "checkbox"
    HSLIDER = "hslider"
    VSLIDER = "vslider"
    NENTRY = "nentry"


GATE_KINDS = (WidgetKind.BUTTON, WidgetKind.CHECKBOX)
CONTINUOUS_KINDS = (WidgetKind.HSLIDER, WidgetKind.VSLIDER, WidgetKind.NENTRY)


class Waveform(enum.Enum):
    SINE = "sine"
    SQUARE = "square"
    SAW = "saw"
    TRIANGLE = "triangle"


@dataclass
class Parameter:
    kind: WidgetKind
    min: float
    max: float
    init: float
    value: Optional[float] = None

    def __post_init__(self):
        if self.value is None:
            self.value = self.init

    def set(self, name: str, value: float) -> float:
        """Clamp into [min, max] and store; warns when a non-gate value is clamped."""
        clamped = max(self.min, min(value, self.max))
        if clamped != value and name != "gate":
            print(
                f"WARNING: {name}={value:g} exceeds range [{self.min:g}, {self.max:g}], "
                f"clamped to {clamped:g}",
                file=sys.stderr,
            )
        self.value = clamped
        return clamped


@dataclass
class VoiceControls:
    gate: Parameter
    freq: Parameter
    gain: Parameter

    @classmethod
    def from_widgets(cls, widgets) -> "VoiceControls":
        """Pick the gate/freq/gain slots out of a voice's (label, Parameter) declarations."""
        declared = {}
        for label, param in widgets:
            if label == "gate" and param.kind in GATE_KINDS:
                declared[label] = param
            elif label in ("freq", "gain") and param.kind in CONTINUOUS_KINDS:
                declared[label] = param

        if "gate" not in declared:
            raise ConfigurationError(
                'voice must expose parameter "gate" '
                '(expected widget: button or checkbox with label "gate")'
            )
        for name in ("freq", "gain"):
            if name not in declared:
                raise ConfigurationError(
                    f'voice must expose parameter "{name}" '
                    f'(expected widget: nentry, hslider, or vslider with label "{name}")'
                )
        return cls(gate=declared["gate"], freq=declared["freq"], gain=declared["gain"])


def describe_controls(controls: VoiceControls) -> list:
    return [
        f"  gate: {controls.gate.kind.value}",
        f"  freq: {controls.freq.kind.value} [{controls.freq.min:g}, {controls.freq.max:g}]",
        f"  gain: {controls.gain.kind.value} [{controls.gain.min:g}, {controls.gain.max:g}]",
    ]


class OscillatorVoice:
    """Single oscillator with a linear attack/release envelope following the gate.

    Phase and envelope level carry across `compute` calls, so a note can be
    rendered in blocks without clicks at the block edges.
    """

    def __init__(self, sample_rate: int, waveform=Waveform.SINE, ramp_seconds: float = 0.005):
        self.sample_rate = sample_rate
        self.waveform = Waveform(waveform)
        self.ramp_samples = max(1, int(ramp_seconds * sample_rate))
        self.controls = VoiceControls.from_widgets(self.widgets())
        self._phase = 0.0
        self._level = 0.0

    def widgets(self) -> list:
        return [
            ("gate", Parameter(WidgetKind.BUTTON, 0.0, 1.0, 0.0)),
            ("freq", Parameter(WidgetKind.NENTRY, 20.0, 20000.0, 440.0)),
            ("gain", Parameter(WidgetKind.HSLIDER, 0.0, 1.0, 0.5)),
        ]

    def _oscillate(self, phase: np.ndarray) -> np.ndarray:
        cycle = (phase / (2 * np.pi)) % 1.0
        if self.waveform is Waveform.SQUARE:
            return np.where(cycle < 0.5, 1.0, -1.0)
        if self.waveform is Waveform.SAW:
            return 2.0 * cycle - 1.0
        if self.waveform is Waveform.TRIANGLE:
            return 1.0 - 4.0 * np.abs(cycle - 0.5)
        return np.sin(phase)

    def compute(self, count: int) -> np.ndarray:
        """Return the next `count` samples as float32."""
        if count <= 0:
            return np.zeros(0, dtype=np.float32)

        n = np.arange(count, dtype=np.float64)
        increment = 2 * np.pi * self.controls.freq.value / self.sample_rate
        phase = self._phase + increment * n
        self._phase = (self._phase + increment * count) % (2 * np.pi)

        step = 1.0 / self.ramp_samples
        if self.controls.gate.value > self._level:
            envelope = np.minimum(self._level + step * (n + 1), self.controls.gate.value)
        else:
            envelope = np.maximum(self._level - step * (n + 1), self.controls.gate.value)
        self._level = float(envelope[-1])

        out = self.controls.gain.value * envelope * self._oscillate(phase)
        return out.astype(np.float32)


def synthesize_audio(voice, duration: float, gate_duration: float, frequency: float, gain: float) -> AudioBuffer:
    """Render one note: gate on for gate_duration seconds, then off until duration."""
    num_samples = int(duration * voice.sample_rate)
    gate_samples = min(max(int(gate_duration * voice.sample_rate), 0), max(num_samples, 0))

    # Frequency and gain are constant during synthesis
    voice.controls.freq.set("freq", frequency)
    voice.controls.gain.set("gain", gain)

    voice.controls.gate.set("gate", 1.0)
    held = voice.compute(gate_samples)
    voice.controls.gate.set("gate", 0.0)
    released = voice.compute(num_samples - gate_samples)

    return AudioBuffer(np.concatenate([held, released]), voice.sample_rate)
