"""End-to-end tests for the spectrogram pipeline."""

import numpy as np
import pytest
from PIL import Image

from synthgram.dsp import AudioBuffer
from synthgram.errors import ConfigurationError, InsufficientSamplesError
from synthgram.pipeline import (
    Overlay,
    SpectrogramSettings,
    apply_overlay,
    compute_mel_spectrogram,
    generate_spectrogram,
    render_spectrogram,
)
from synthgram.render import apply_colormap
from synthgram.synth import OscillatorVoice, synthesize_audio


@pytest.fixture
def silence():
    return AudioBuffer(np.zeros(2048), 44100)


@pytest.fixture
def small_settings():
    return SpectrogramSettings(fft_size=8, hop_size=4, mel_bands=2, use_db=False)


class TestSettings:
    def test_defaults(self):
        settings = SpectrogramSettings()
        assert (settings.fft_size, settings.hop_size, settings.mel_bands) == (2048, 512, 128)
        assert settings.window == "hann"
        assert settings.colormap == "hot"
        assert settings.db_min == -80.0
        assert settings.resolved_fmax() == 22050.0

    @pytest.mark.parametrize(
        "field,value",
        [
            ("fft_size", 0),
            ("fft_size", 1),
            ("hop_size", 0),
            ("mel_bands", -4),
            ("sample_rate", 0),
            ("fmin", -1.0),
            ("fmax", -5.0),
            ("scale", 0.0),
            ("vscale", -1.0),
            ("db_min", float("-inf")),
        ],
    )
    def test_invalid(self, field, value):
        settings = SpectrogramSettings(**{field: value})
        with pytest.raises(ConfigurationError):
            settings.validate()

    def test_degenerate_band_warns(self, capsys):
        SpectrogramSettings(fmin=5000.0, fmax=1000.0).validate()
        assert "fmax (1000 Hz) <= fmin (5000 Hz)" in capsys.readouterr().err

    def test_unknown_names_warn(self, capsys):
        SpectrogramSettings(window="kaiser", colormap="jet").validate()
        err = capsys.readouterr().err
        assert "unknown window 'kaiser'" in err
        assert "unknown colormap 'jet'" in err

    def test_warnings_can_be_suppressed(self, capsys):
        SpectrogramSettings(window="kaiser").validate(warn=False)
        assert capsys.readouterr().err == ""


class TestPipeline:
    def test_silence_renders_uniform_image(self, silence, small_settings):
        mel_spec = compute_mel_spectrogram(silence, small_settings)
        assert mel_spec.shape == (511, 2)
        assert not mel_spec.any()

        image = render_spectrogram(silence, small_settings)
        assert image.size == (511, 2)
        pixels = np.asarray(image)
        assert np.all(pixels == np.array(apply_colormap(0.0, "hot"), dtype=np.uint8))

    def test_normalized_output(self):
        voice = OscillatorVoice(8000)
        audio = synthesize_audio(voice, 0.5, 0.25, 1000.0, 0.8)
        settings = SpectrogramSettings(sample_rate=8000, fft_size=256, hop_size=64, mel_bands=32)
        mel_spec = compute_mel_spectrogram(audio, settings)
        assert mel_spec.min() == 0.0
        assert mel_spec.max() == 1.0

    def test_db_scaling_floor(self):
        voice = OscillatorVoice(8000)
        audio = synthesize_audio(voice, 0.5, 0.25, 1000.0, 0.8)
        settings = SpectrogramSettings(
            sample_rate=8000, fft_size=256, hop_size=64, mel_bands=32, use_db=True, db_min=-60.0
        )
        mel_spec = compute_mel_spectrogram(audio, settings)
        # the released tail is silent and lands on the floor
        np.testing.assert_array_equal(mel_spec[-1], np.zeros(32))
        assert mel_spec.max() == 1.0

    def test_tone_lights_up_its_band(self):
        voice = OscillatorVoice(8000)
        audio = synthesize_audio(voice, 0.5, 0.5, 1000.0, 0.8)
        settings = SpectrogramSettings(sample_rate=8000, fft_size=256, hop_size=128, mel_bands=16)
        mel_spec = compute_mel_spectrogram(audio, settings)
        loudest = np.argmax(mel_spec.mean(axis=0))
        assert 3 <= loudest <= 9
        assert mel_spec[:, -1].max() < 0.1

    def test_sample_rate_mismatch_rejected(self, tmp_path):
        audio = synthesize_audio(OscillatorVoice(8000), 0.5, 0.5, 1000.0, 0.8)
        path = tmp_path / "mismatch.png"
        with pytest.raises(ConfigurationError, match="8000 Hz"):
            generate_spectrogram(audio, SpectrogramSettings(fft_size=256, hop_size=128, mel_bands=16), str(path))
        assert not path.exists()

    def test_scaled_dimensions(self, silence, small_settings):
        small_settings.scale = 2.0
        small_settings.hscale = 0.5
        small_settings.vscale = 3.0
        assert render_spectrogram(silence, small_settings).size == (511, 12)

    def test_insufficient_samples_writes_nothing(self, tmp_path):
        path = tmp_path / "short.png"
        with pytest.raises(InsufficientSamplesError):
            generate_spectrogram(AudioBuffer(np.zeros(100), 44100), SpectrogramSettings(fft_size=256), str(path))
        assert not path.exists()

    def test_generate_writes_png(self, tmp_path, silence, small_settings, capsys):
        path = tmp_path / "silence.png"
        image = generate_spectrogram(silence, small_settings, str(path))
        with Image.open(path) as saved:
            assert saved.mode == "RGB"
            assert saved.size == image.size == (511, 2)
        out = capsys.readouterr().out
        assert "Computing STFT..." in out
        assert f"Saved: {path}" in out


class TestOverlay:
    def test_gate_line_position(self):
        image = Image.new("RGB", (100, 10), "black")
        apply_overlay(image, Overlay(gate_time=0.5, duration=2.0, gate_line=True, gate_style="solid"))
        assert image.getpixel((25, 0)) == (255, 0, 0)
        assert image.getpixel((24, 0)) == (0, 0, 0)

    def test_gate_line_outside_image_is_skipped(self):
        image = Image.new("RGB", (100, 10), "black")
        apply_overlay(image, Overlay(gate_time=0.0, duration=2.0))
        apply_overlay(image, Overlay(gate_time=3.0, duration=2.0))
        assert image.getbbox() is None

    def test_disabled_overlay_draws_nothing(self):
        image = Image.new("RGB", (100, 10), "black")
        apply_overlay(image, Overlay(gate_time=1.0, duration=2.0, gate_line=False))
        assert image.getbbox() is None

    def test_overlay_in_saved_file(self, tmp_path, silence, small_settings):
        path = tmp_path / "gate.png"
        overlay = Overlay(gate_time=1.0, duration=2.0, gate_color="cyan", gate_style="solid")
        generate_spectrogram(silence, small_settings, str(path), overlay)
        with Image.open(path) as saved:
            assert saved.size == (511, 2)
            assert saved.getpixel((255, 1)) == (0, 255, 255)
            assert saved.getpixel((0, 1)) == (0, 0, 0)
