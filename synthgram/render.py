"""Color mapping, raster assembly, overlays and PNG output."""

import io
import os
import tempfile

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from synthgram.errors import EncodingError, InvalidDimensionsError, ResourceError

DEFAULT_COLORMAP = "hot"

# Simplified viridis: 5 stops, linear between them
VIRIDIS_STOPS = np.array(
    [
        (68, 1, 84),
        (59, 82, 139),
        (33, 145, 140),
        (94, 201, 98),
        (253, 231, 37),
    ],
    dtype=np.float64,
)

GATE_COLORS = {
    "red": (255, 0, 0),
    "white": (255, 255, 255),
    "yellow": (255, 255, 0),
    "cyan": (0, 255, 255),
}
GATE_STYLES = {
    "solid": None,
    "dashed": (6, 4),  # pixels on, pixels off
    "dotted": (1, 2),
}
TITLE_FONT = "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"
TITLE_SIZE = 12


def _viridis(v):
    segment = np.minimum((v / 0.25).astype(np.int64), 3)
    t = ((v - segment * 0.25) / 0.25)[..., np.newaxis]
    rgb = VIRIDIS_STOPS[segment] * (1 - t) + VIRIDIS_STOPS[segment + 1] * t
    return rgb[..., 0], rgb[..., 1], rgb[..., 2]


def _magma(v):
    return v * 252, v * v * 180, np.sqrt(v) * 200


def _hot(v):
    r = np.where(v < 0.33, v / 0.33 * 255, 255.0)
    g = np.where(v < 0.33, 0.0, np.where(v < 0.66, (v - 0.33) / 0.33 * 255, 255.0))
    b = np.where(v < 0.66, 0.0, (v - 0.66) / 0.34 * 255)
    return r, g, b


def _gray(v):
    gray = v * 255
    return gray, gray, gray


COLORMAPS = {
    "viridis": _viridis,
    "magma": _magma,
    "hot": _hot,
    "gray": _gray,
}


def resolve_colormap(name: str) -> str:
    return name if name in COLORMAPS else DEFAULT_COLORMAP


def _to_byte(channel: np.ndarray) -> np.ndarray:
    # Truncate like an 8-bit cast; rounding first absorbs float error at exact stops (e.g. 254.99999...)
    return np.clip(np.floor(np.round(channel, 6)), 0, 255).astype(np.uint8)


def colorize(values, colormap: str = DEFAULT_COLORMAP) -> np.ndarray:
    """Map an array of scalars to uint8 RGB, shape values.shape + (3,). Values are clamped to [0, 1]."""
    v = np.clip(np.nan_to_num(np.asarray(values, dtype=np.float64), nan=0.0), 0.0, 1.0)
    r, g, b = COLORMAPS[resolve_colormap(colormap)](v)
    return np.stack([_to_byte(r), _to_byte(g), _to_byte(b)], axis=-1)


def apply_colormap(value: float, colormap: str = DEFAULT_COLORMAP) -> tuple:
    """RGB triple for one scalar; unknown colormap names fall back to hot."""
    r, g, b = colorize(np.array([value]), colormap)[0]
    return int(r), int(g), int(b)


def image_dimensions(n_frames: int, n_mels: int, scale: float = 1.0, hscale: float = 1.0, vscale: float = 1.0) -> tuple:
    """Pixel size of the rendered spectrogram, truncated to integers."""
    return int(n_frames * hscale * scale), int(n_mels * vscale * scale)


def resample_indices(n_frames: int, n_mels: int, width: int, height: int) -> tuple:
    """
    Nearest-neighbor lookup tables for a width x height raster.

    Returns (frame_idx per column, mel_idx per row). Row 0 is the top of
    the image and maps to the highest mel band.
    """
    if width <= 0 or height <= 0:
        raise InvalidDimensionsError(f"invalid image dimensions {width}x{height}")

    columns = np.arange(width, dtype=np.int64)
    frame_idx = np.minimum(columns * n_frames // width, n_frames - 1)

    rows = np.arange(height, dtype=np.int64)
    mel_idx = np.minimum((height - 1 - rows) * n_mels // height, n_mels - 1)

    return frame_idx, mel_idx


def render_image(mel_spec: np.ndarray, width: int, height: int, colormap: str = DEFAULT_COLORMAP) -> Image.Image:
    """Resample a normalized (n_frames, n_mels) spectrogram into an RGB image."""
    mel_spec = np.asarray(mel_spec)
    n_frames, n_mels = mel_spec.shape
    frame_idx, mel_idx = resample_indices(n_frames, n_mels, width, height)

    values = mel_spec[frame_idx[np.newaxis, :], mel_idx[:, np.newaxis]]
    return Image.fromarray(colorize(values, colormap))


def draw_gate_line(image: Image.Image, x: int, color: str = "red", style: str = "dashed"):
    """Draw a full-height vertical marker at column x, in place."""
    draw = ImageDraw.Draw(image)
    fill = GATE_COLORS.get(color, GATE_COLORS["red"])
    pattern = GATE_STYLES.get(style, GATE_STYLES["dashed"])

    if pattern is None:
        draw.line([(x, 0), (x, image.height - 1)], fill=fill, width=1)
        return

    on, off = pattern
    for y in range(0, image.height, on + off):
        draw.line([(x, y), (x, min(y + on, image.height) - 1)], fill=fill, width=1)


def draw_title(image: Image.Image, text: str):
    """Write a one-line title at the top left, with a white halo for readability."""
    draw = ImageDraw.Draw(image)
    try:
        font = ImageFont.truetype(TITLE_FONT, TITLE_SIZE)
    except OSError:
        font = ImageFont.load_default()

    for dx in (-1, 0, 1):
        for dy in (-1, 0, 1):
            if dx or dy:
                draw.text((4 + dx, 2 + dy), text, fill="white", font=font)
    draw.text((4, 2), text, fill="black", font=font)


def encode_png(image: Image.Image) -> bytes:
    """Encode to 8-bit RGB PNG bytes (non-interlaced, default compression)."""
    buffer = io.BytesIO()
    try:
        image.convert("RGB").save(buffer, format="PNG")
    except (OSError, ValueError) as exc:
        raise EncodingError(f"PNG encoding failed: {exc}") from exc
    return buffer.getvalue()


def write_png(image: Image.Image, output_path: str):
    """Encode, then write through a temporary file so a failed run leaves no partial PNG."""
    data = encode_png(image)
    directory = os.path.dirname(os.path.abspath(output_path))
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(dir=directory, suffix=".png.tmp", delete=False) as f:
            tmp_path = f.name
            f.write(data)
        # NamedTemporaryFile is owner-only; give the PNG the usual umask mode
        umask = os.umask(0)
        os.umask(umask)
        os.chmod(tmp_path, 0o666 & ~umask)
        os.replace(tmp_path, output_path)
    except OSError as exc:
        if tmp_path and os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise ResourceError(f"could not write {output_path}: {exc}") from exc
