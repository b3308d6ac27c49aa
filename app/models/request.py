from pydantic import BaseModel, Field
from typing import Any, Dict, Mapping, Optional

from app.core.errors import ValidationError
from app.services.presets import (
    DEFAULT_AUDIO_BITRATE,
    DEFAULT_FILENAME_STYLE,
    DEFAULT_FORMAT,
    DEFAULT_VIDEO_CODEC,
    DEFAULT_VIDEO_QUALITY,
    check_quality,
    normalize_link,
    parse_quality,
)


def _present(value: Any) -> bool:
    return value is not None and value != ""


def _to_int(value: Any, default: int, fmt: str) -> int:
    if not _present(value):
        return default
    number = parse_quality(value)
    if number is None:
        raise ValidationError(f"Invalid quality for format {fmt}")
    return number


def _to_str(value: Any, default: str) -> str:
    return str(value) if value else default


class ConversionRequest(BaseModel):
    """Normalized conversion job, serialized with the upstream's field names"""
    link: str = Field(..., description="Canonical YouTube video link")
    format: str = Field(DEFAULT_FORMAT, description="Output format (mp4 or mp3)")
    audio_bitrate: int = Field(DEFAULT_AUDIO_BITRATE, alias="audioBitrate")
    video_quality: int = Field(DEFAULT_VIDEO_QUALITY, alias="videoQuality")
    filename_style: str = Field(DEFAULT_FILENAME_STYLE, alias="filenameStyle")
    v_codec: str = Field(DEFAULT_VIDEO_CODEC, alias="vCodec")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_fields(cls, fields: Mapping[str, Any]) -> "ConversionRequest":
        """
        Validate raw inbound fields and apply defaults.
        `link` or `url` carries the video link. When `format` is given,
        the supplied quality (videoQuality, else audioBitrate) must be
        one of that format's presets.
        """
        link = normalize_link(fields.get("link") or fields.get("url"))

        explicit_format = fields.get("format")
        fmt = str(explicit_format) if _present(explicit_format) else DEFAULT_FORMAT
        if _present(explicit_format):
            quality = fields.get("videoQuality")
            if not _present(quality):
                quality = fields.get("audioBitrate")
            check_quality(fmt, quality)

        return cls(
            link=link,
            format=fmt,
            audioBitrate=_to_int(fields.get("audioBitrate"), DEFAULT_AUDIO_BITRATE, fmt),
            videoQuality=_to_int(fields.get("videoQuality"), DEFAULT_VIDEO_QUALITY, fmt),
            filenameStyle=_to_str(fields.get("filenameStyle"), DEFAULT_FILENAME_STYLE),
            vCodec=_to_str(fields.get("vCodec"), DEFAULT_VIDEO_CODEC),
        )

    def to_form(self) -> Dict[str, str]:
        """Form body for the upstream converter"""
        return {
            "link": self.link,
            "format": self.format,
            "audioBitrate": str(self.audio_bitrate),
            "videoQuality": str(self.video_quality),
            "filenameStyle": self.filename_style,
            "vCodec": self.v_codec,
        }


def merge_fields(body: Optional[Mapping[str, Any]], query: Mapping[str, Any]) -> Dict[str, Any]:
    """Combine query and body fields; body wins when both supply a field"""
    merged: Dict[str, Any] = dict(query)
    if body:
        merged.update({k: v for k, v in body.items() if _present(v)})
    return merged
