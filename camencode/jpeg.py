"""Saving of YUV frames as JPEG files carrying EXIF data and a thumbnail."""

from __future__ import annotations

import contextlib
import logging
import struct
import sys
import time
from typing import Any, BinaryIO, Iterator, Mapping, Sequence

from camencode.exif import ExifData, ExifEntry, ExifFormat, ExifIfd, read_exif_tag
from camencode.stream import StillOptions, StreamInfo
from camencode.yuv_jpeg import yuv_to_jpeg

_log = logging.getLogger(__name__)

_MAKE = "Raspberry Pi"
_SOFTWARE = "libcamera-apps"
_EXIF_HEADER = b"\xff\xd8\xff\xe1"
# The whole EXIF segment must stay below 64KiB, so this leaves safe room.
_MAX_THUMBNAIL = 60000


def _set_string(entry: ExifEntry, text: str) -> None:
    encoded = text.encode("utf-8")
    entry.format = ExifFormat.ASCII
    entry.components = len(encoded)
    entry.data = bytearray(encoded)


def _set_short(entry: ExifEntry, value: int) -> None:
    entry.data = bytearray(struct.pack("<H", int(value) & 0xFFFF))


def _set_long(entry: ExifEntry, value: int) -> None:
    entry.data = bytearray(struct.pack("<I", int(value) & 0xFFFFFFFF))


def _set_rational(entry: ExifEntry, numerator: int, denominator: int) -> None:
    entry.data = bytearray(struct.pack("<II", int(numerator) & 0xFFFFFFFF, int(denominator) & 0xFFFFFFFF))


def _make_thumbnail(data, info: StreamInfo, options: StillOptions) -> bytes:
    for quality in range(options.thumb_quality, 0, -5):
        thumb = yuv_to_jpeg(data, info, options.thumb_width, options.thumb_height, quality, 0)
        if len(thumb) < _MAX_THUMBNAIL:
            _log.debug("Thumbnail size %d", len(thumb))
            return thumb
    raise ValueError("failed to make acceptable thumbnail")


def create_exif_data(planes: Sequence, info: StreamInfo, metadata: Mapping[str, Any] | None,
                     cam_model: str, options: StillOptions) -> tuple[bytes, bytes]:
    """Build the EXIF block and the thumbnail JPEG (empty if none) for a frame.

    ``metadata`` may hold ExposureTime (microseconds), AnalogueGain,
    DigitalGain and LensPosition.
    """
    metadata = metadata or {}
    exif = ExifData()

    _set_string(exif.entry(ExifIfd.EXIF, "Make"), _MAKE)
    _set_string(exif.entry(ExifIfd.EXIF, "Model"), cam_model)
    _set_string(exif.entry(ExifIfd.EXIF, "Software"), _SOFTWARE)
    stamp = time.strftime("%Y:%m:%d %H:%M:%S", time.localtime())
    for name in ("DateTime", "DateTimeOriginal", "DateTimeDigitized"):
        _set_string(exif.entry(ExifIfd.EXIF, name), stamp)

    exposure = metadata.get("ExposureTime")
    if exposure is not None:
        _log.debug("Exposure time: %s", exposure)
        _set_rational(exif.entry(ExifIfd.EXIF, "ExposureTime"), int(exposure), 1000000)
    analogue = metadata.get("AnalogueGain")
    if analogue is not None:
        digital = metadata.get("DigitalGain")
        gain = analogue * (digital if digital is not None else 1.0)
        _log.debug("Ag %s Dg %s Total %s", analogue, digital, gain)
        _set_short(exif.entry(ExifIfd.EXIF, "ISOSpeedRatings"), int(100 * gain))
    lens = metadata.get("LensPosition")
    if lens is not None:
        _set_rational(exif.entry(ExifIfd.EXIF, "SubjectDistance"), 1000, int(1000.0 * lens))

    for item in options.exif:
        _log.debug("Processing EXIF item: %s", item)
        read_exif_tag(exif, item)

    thumb = b""
    if options.thumb_quality:
        _log.debug("Thumbnail dimensions are %d x %d", options.thumb_width, options.thumb_height)
        _set_short(exif.entry(ExifIfd.IFD_1, "ImageWidth"), options.thumb_width)
        _set_short(exif.entry(ExifIfd.IFD_1, "ImageLength"), options.thumb_height)
        _set_short(exif.entry(ExifIfd.IFD_1, "Compression"), 6)
        offset_entry = exif.entry(ExifIfd.IFD_1, "JPEGInterchangeFormat")
        _set_long(offset_entry, 0)
        length_entry = exif.entry(ExifIfd.IFD_1, "JPEGInterchangeFormatLength")
        _set_long(length_entry, 0)

        # The block's length is only known once it has been written out.
        exif_len = len(exif.to_bytes())
        thumb = _make_thumbnail(planes[0], info, options)
        # The thumbnail follows the block; offsets count from the TIFF header.
        _set_long(offset_entry, exif_len - 6)
        _set_long(length_entry, len(thumb))

    return exif.to_bytes(), thumb


def _without_header(jpeg: bytes) -> bytes:
    """Drop the start-of-image marker and any JFIF segment from a JPEG."""
    if jpeg[2:4] == b"\xff\xe0":
        return jpeg[4 + int.from_bytes(jpeg[4:6], "big"):]
    return jpeg[2:]


@contextlib.contextmanager
def _open_output(filename: str) -> Iterator[BinaryIO]:
    if filename == "-":
        out = sys.stdout.buffer
        yield out
        out.flush()
    else:
        with open(filename, "wb") as out:
            yield out


def jpeg_save(planes: Sequence, info: StreamInfo, metadata: Mapping[str, Any] | None,
              filename: str, cam_model: str, options: StillOptions) -> None:
    """Write a YUV frame to ``filename`` ("-" for standard output) as JPEG with EXIF."""
    if info.width % 2 or info.height % 2:
        raise ValueError("both width and height must be even")
    if len(planes) != 1:
        raise ValueError("only single plane YUV supported")

    exif, thumb = create_exif_data(planes, info, metadata, cam_model, options)
    jpeg = yuv_to_jpeg(planes[0], info, info.width, info.height, options.quality, options.restart)
    _log.debug("JPEG size is %d", len(jpeg))
    _log.debug("EXIF data len %d", len(exif))

    segment_len = (len(exif) + len(thumb) + 2) & 0xFFFF
    with _open_output(filename) as out:
        out.write(_EXIF_HEADER)
        out.write(segment_len.to_bytes(2, "big"))
        out.write(exif)
        out.write(thumb)
        out.write(_without_header(jpeg))