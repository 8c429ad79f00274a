"""Descriptions of camera streams and of the options that drive encoding."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class PixelFormat(enum.Enum):
    """Pixel layouts a camera stream can deliver."""

    YUV420 = "YUV420"
    YUYV = "YUYV"
    RGB888 = "RGB888"
    BGR888 = "BGR888"
    SRGGB10_CSI2P = "SRGGB10_CSI2P"
    SGRBG10_CSI2P = "SGRBG10_CSI2P"
    SBGGR10_CSI2P = "SBGGR10_CSI2P"
    SGBRG10_CSI2P = "SGBRG10_CSI2P"
    SRGGB12_CSI2P = "SRGGB12_CSI2P"
    SGRBG12_CSI2P = "SGRBG12_CSI2P"
    SBGGR12_CSI2P = "SBGGR12_CSI2P"
    SGBRG12_CSI2P = "SGBRG12_CSI2P"
    SRGGB16 = "SRGGB16"
    SGRBG16 = "SGRBG16"
    SBGGR16 = "SBGGR16"
    SGBRG16 = "SGBRG16"


@dataclass(frozen=True)
class StreamInfo:
    """Geometry and format of the frames in a stream."""

    width: int
    height: int
    stride: int
    pixel_format: PixelFormat
    colour_space: str | None = None


@dataclass
class StillOptions:
    """Settings used when saving still images."""

    output: str = ""
    encoding: str = "jpg"
    quality: int = 93
    restart: int = 0
    thumb_width: int = 320
    thumb_height: int = 240
    thumb_quality: int = 70
    exif: list[str] = field(default_factory=list)
    verbose: int = 1


@dataclass
class VideoOptions:
    """Settings used when encoding video."""

    output: str = ""
    codec: str = "h264"
    quality: int = 50
    bitrate: int = 0
    profile: str = ""
    level: str = ""
    intra: int = 0
    inline_headers: bool = False
    framerate: float | None = None
    width: int = 0
    height: int = 0
    libav_video_codec: str = "h264_v4l2m2m"
    verbose: int = 1