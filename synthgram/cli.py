"""Synthgram: render a synthesized note as a mel spectrogram PNG.

Usage:
    synthgram 2.0 1.0 440 0.5
    synthgram 2.0 1.0 440 0.5 --cmap viridis --db -o note.png
    python3 -m synthgram 1.0 0.5 220 0.8 --layout raw
"""

import argparse
import os
import sys
from datetime import datetime

from synthgram.errors import ConfigurationError, ResourceError, SynthgramError
from synthgram.pipeline import Overlay, SpectrogramSettings, generate_spectrogram
from synthgram.render import DEFAULT_COLORMAP, GATE_COLORS, GATE_STYLES
from synthgram.synth import OscillatorVoice, Waveform, describe_controls, synthesize_audio

PROGRAM_NAME = "synthgram"
LAYOUTS = ["full", "minimal", "scientific", "raw"]


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME,
        description="Synthesize a gated note and save its mel spectrogram as a PNG.",
    )
    parser.add_argument("duration", type=float, help="Total duration in seconds")
    parser.add_argument("gate_duration", type=float, help="Gate=1 duration in seconds (from start)")
    parser.add_argument("frequency", type=float, help="Frequency in Hz")
    parser.add_argument("gain", type=float, help="Gain value")

    audio = parser.add_argument_group("audio options")
    audio.add_argument("--sr", type=int, default=44100, help="Sample rate (default: 44100)")
    audio.add_argument(
        "--waveform", default="sine", choices=[w.value for w in Waveform],
        help="Oscillator waveform (default: sine)"
    )

    fft = parser.add_argument_group("FFT options")
    fft.add_argument("--fft", type=int, default=2048, help="FFT size (default: 2048)")
    fft.add_argument("--hop", type=int, default=512, help="Hop size (default: 512)")
    fft.add_argument(
        "--window", default="hann",
        help="Window type: hann|hamming|blackman|rectangular (default: hann)"
    )

    mel = parser.add_argument_group("mel options")
    mel.add_argument("--mel", type=int, default=128, help="Number of mel bands (default: 128)")
    mel.add_argument("--fmin", type=float, default=0.0, help="Min frequency for mel scale (default: 0)")
    mel.add_argument("--fmax", type=float, default=None, help="Max frequency for mel scale (default: sr/2)")

    image = parser.add_argument_group("image options")
    image.add_argument("--output", "-o", default=None, help="Output file (default: auto-generated)")
    image.add_argument("--scale", type=float, default=1.0, help="Global scale factor (default: 1.0)")
    image.add_argument("--hscale", type=float, default=1.0, help="Horizontal scale (default: 1.0)")
    image.add_argument("--vscale", type=float, default=1.0, help="Vertical scale (default: 1.0)")
    image.add_argument(
        "--cmap", default=DEFAULT_COLORMAP,
        help="Colormap: viridis|magma|hot|gray (default: hot)"
    )
    image.add_argument(
        "--layout", default="full", choices=LAYOUTS,
        help="Layout preset: full|minimal|scientific|raw (default: full)"
    )

    visual = parser.add_argument_group("visual elements")
    visual.add_argument(
        "--title", action=argparse.BooleanOptionalAction, default=True,
        help="Show/hide title (default: show)"
    )
    visual.add_argument(
        "--gate-line", action=argparse.BooleanOptionalAction, default=True,
        help="Show/hide gate line (default: show)"
    )
    visual.add_argument(
        "--gate-color", default="red", choices=list(GATE_COLORS.keys()),
        help="Gate line color (default: red)"
    )
    visual.add_argument(
        "--gate-style", default="dashed", choices=list(GATE_STYLES.keys()),
        help="Gate line style (default: dashed)"
    )

    amplitude = parser.add_argument_group("amplitude")
    amplitude.add_argument("--db", action="store_true", help="Display in decibels")
    amplitude.add_argument("--dbmin", type=float, default=-80.0, help="Minimum dB value (default: -80)")

    args = parser.parse_args(argv)
    return apply_layout(args)


def apply_layout(args):
    """Layout presets override the individual visual switches."""
    if args.layout == "minimal":
        args.title = False
    elif args.layout == "scientific":
        args.title = False
        args.gate_color = "white"
        args.gate_style = "solid"
    elif args.layout == "raw":
        args.title = False
        args.gate_line = False
    return args


def generate_output_filename(output=None, now=None) -> str:
    if output:
        return output if output.endswith(".png") else output + ".png"
    now = now or datetime.now()
    return f"{PROGRAM_NAME}-{now.strftime('%Y%m%d-%H%M%S')}.png"


def settings_from_args(args) -> SpectrogramSettings:
    return SpectrogramSettings(
        sample_rate=args.sr,
        fft_size=args.fft,
        hop_size=args.hop,
        window=args.window,
        mel_bands=args.mel,
        fmin=args.fmin,
        fmax=args.fmax,
        colormap=args.cmap,
        use_db=args.db,
        db_min=args.dbmin,
        scale=args.scale,
        hscale=args.hscale,
        vscale=args.vscale,
    )


def run(args):
    if args.duration <= 0:
        raise ConfigurationError(f"duration must be positive, got {args.duration:g}")
    if args.gate_duration < 0:
        raise ConfigurationError(f"gate_duration must be >= 0, got {args.gate_duration:g}")

    settings = settings_from_args(args)
    settings.validate(warn=False)

    voice = OscillatorVoice(settings.sample_rate, Waveform(args.waveform))
    print("DSP Parameters:")
    for line in describe_controls(voice.controls):
        print(line)
    print()

    print("Synthesizing audio...")
    audio = synthesize_audio(voice, args.duration, args.gate_duration, args.frequency, args.gain)
    print(f"  Generated {len(audio)} samples")
    print()

    overlay = Overlay(
        title=(
            f"{args.waveform} {voice.controls.freq.value:g} Hz, gain {voice.controls.gain.value:g}"
            if args.title else None
        ),
        gate_time=args.gate_duration,
        duration=args.duration,
        gate_line=args.gate_line,
        gate_color=args.gate_color,
        gate_style=args.gate_style,
    )

    output_path = generate_output_filename(args.output)
    output_dir = os.path.dirname(output_path)
    if output_dir:
        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as exc:
            raise ResourceError(f"could not create {output_dir}: {exc}") from exc
    generate_spectrogram(audio, settings, output_path, overlay)
    return output_path


def main(argv=None):
    args = parse_args(argv)
    try:
        run(args)
    except SynthgramError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
