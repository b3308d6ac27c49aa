import re
from typing import Dict, Optional, Tuple

from app.core.errors import ValidationError

PRESETS: Dict[str, Tuple[int, ...]] = {
    "mp4": (1080, 720, 360, 240, 144),
    "mp3": (320, 128),
}

DEFAULT_FORMAT = "mp4"
DEFAULT_AUDIO_BITRATE = 128
DEFAULT_VIDEO_QUALITY = 1080
DEFAULT_FILENAME_STYLE = "pretty"
DEFAULT_VIDEO_CODEC = "h264"

YOUTUBE_LINK_RE = re.compile(
    r"^(https?://)?(www\.)?(youtube\.com|youtu\.be)/"
    r"(watch\?v=|shorts/|embed/)?"
    r"[A-Za-z0-9_-]{11}"
    r"(\?.*)?$"
)

INVALID_LINK = "Invalid or missing YouTube link"


def presets_as_json() -> Dict[str, list]:
    return {name: list(values) for name, values in PRESETS.items()}


def normalize_link(link: Optional[str]) -> str:
    """Return the link unchanged if it is a canonical single-video YouTube reference"""
    if not link or not isinstance(link, str):
        raise ValidationError(INVALID_LINK)
    if not YOUTUBE_LINK_RE.fullmatch(link):
        raise ValidationError(INVALID_LINK)
    return link


def parse_quality(value) -> Optional[int]:
    """Integral value of `value`, or None when it is not a whole number"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        try:
            return int(value)
        except ValueError:
            pass
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not number.is_integer():
        return None
    return int(number)


def check_quality(fmt: str, quality) -> None:
    """Raise unless `quality` is one of the presets for `fmt`"""
    allowed = PRESETS.get(fmt)
    value = parse_quality(quality)
    if not allowed or value not in allowed:
        raise ValidationError(f"Invalid quality for format {fmt}")
