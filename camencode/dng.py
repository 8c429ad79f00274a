"""Saving of raw Bayer frames as DNG files."""

from __future__ import annotations

import logging
import math
import struct
import time
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Mapping, Sequence

import numpy as np

from camencode.stream import PixelFormat, StillOptions, StreamInfo

_log = logging.getLogger(__name__)

_MAKE = "Raspberry Pi"
_SOFTWARE = "libcamera-still"

_TIFF_RGGB = (0, 1, 1, 2)
_TIFF_GRBG = (1, 0, 2, 1)
_TIFF_BGGR = (2, 1, 1, 0)
_TIFF_GBRG = (1, 2, 0, 1)


@dataclass(frozen=True)
class _BayerFormat:
    name: str
    bits: int
    order: tuple[int, int, int, int]


_BAYER_FORMATS = {
    PixelFormat.SRGGB10_CSI2P: _BayerFormat("RGGB-10", 10, _TIFF_RGGB),
    PixelFormat.SGRBG10_CSI2P: _BayerFormat("GRBG-10", 10, _TIFF_GRBG),
    PixelFormat.SBGGR10_CSI2P: _BayerFormat("BGGR-10", 10, _TIFF_BGGR),
    PixelFormat.SGBRG10_CSI2P: _BayerFormat("GBRG-10", 10, _TIFF_GBRG),
    PixelFormat.SRGGB12_CSI2P: _BayerFormat("RGGB-12", 12, _TIFF_RGGB),
    PixelFormat.SGRBG12_CSI2P: _BayerFormat("GRBG-12", 12, _TIFF_GRBG),
    PixelFormat.SBGGR12_CSI2P: _BayerFormat("BGGR-12", 12, _TIFF_BGGR),
    PixelFormat.SGBRG12_CSI2P: _BayerFormat("GBRG-12", 12, _TIFF_GBRG),
    PixelFormat.SRGGB16: _BayerFormat("RGGB-16", 16, _TIFF_RGGB),
    PixelFormat.SGRBG16: _BayerFormat("GRBG-16", 16, _TIFF_GRBG),
    PixelFormat.SBGGR16: _BayerFormat("BGGR-16", 16, _TIFF_BGGR),
    PixelFormat.SGBRG16: _BayerFormat("GBRG-16", 16, _TIFF_GBRG),
}


class Matrix:
    """A 3x3 matrix stored in row-major order."""

    __slots__ = ("m",)

    def __init__(self, *values: float) -> None:
        if len(values) != 9:
            raise ValueError("a 3x3 matrix needs exactly 9 values")
        self.m = tuple(float(v) for v in values)

    def __repr__(self) -> str:
        return f"Matrix{self.m!r}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.m == other.m

    def __hash__(self) -> int:
        return hash(self.m)

    def transpose(self) -> "Matrix":
        m = self.m
        return Matrix(m[0], m[3], m[6], m[1], m[4], m[7], m[2], m[5], m[8])

    def cofactor(self) -> "Matrix":
        m = self.m
        return Matrix(
            m[4] * m[8] - m[5] * m[7], -(m[3] * m[8] - m[5] * m[6]), m[3] * m[7] - m[4] * m[6],
            -(m[1] * m[8] - m[2] * m[7]), m[0] * m[8] - m[2] * m[6], -(m[0] * m[7] - m[1] * m[6]),
            m[1] * m[5] - m[2] * m[4], -(m[0] * m[5] - m[2] * m[3]), m[0] * m[4] - m[1] * m[3],
        )

    def adjugate(self) -> "Matrix":
        return self.cofactor().transpose()

    def determinant(self) -> float:
        m = self.m
        return (m[0] * (m[4] * m[8] - m[5] * m[7])
                - m[1] * (m[3] * m[8] - m[5] * m[6])
                + m[2] * (m[3] * m[7] - m[4] * m[6]))

    def inverse(self) -> "Matrix":
        det = self.determinant()
        if det == 0:
            raise ValueError("matrix is singular")
        return self.adjugate() * (1.0 / det)

    def __mul__(self, other: Any) -> "Matrix":
        if isinstance(other, Matrix):
            a, b = self.m, other.m
            return Matrix(*(
                a[i * 3] * b[j] + a[i * 3 + 1] * b[3 + j] + a[i * 3 + 2] * b[6 + j]
                for i in range(3)
                for j in range(3)
            ))
        if isinstance(other, (int, float)):
            return Matrix(*(v * other for v in self.m))
        return NotImplemented


def diagonal(d0: float, d1: float, d2: float) -> Matrix:
    """Return the diagonal matrix with the given entries."""
    return Matrix(d0, 0, 0, 0, d1, 0, 0, 0, d2)


def _source(data) -> np.ndarray:
    return np.frombuffer(data, dtype=np.uint8)


def _gather(src: np.ndarray, indices: np.ndarray) -> np.ndarray:
    if indices.size and int(indices.max()) >= src.size:
        raise ValueError("not enough raw image data")
    return src[indices].astype(np.uint16)


def unpack_10bit(data, info: StreamInfo) -> np.ndarray:
    """Unpack CSI-2 packed 10-bit samples into a (height, width) uint16 array."""
    src = _source(data)
    x = np.arange(info.width, dtype=np.int64)
    base = (x // 4) * 5
    row_starts = (np.arange(info.height, dtype=np.int64) * info.stride)[:, None]
    high = _gather(src, row_starts + base + (x & 3))
    low = _gather(src, row_starts + base + 4)
    shift = ((x & 3) << 1).astype(np.uint16)
    return (high << 2) | ((low >> shift) & 3)


def unpack_12bit(data, info: StreamInfo) -> np.ndarray:
    """Unpack CSI-2 packed 12-bit samples into a (height, width) uint16 array."""
    src = _source(data)
    x = np.arange(info.width, dtype=np.int64)
    base = (x // 2) * 3
    row_starts = (np.arange(info.height, dtype=np.int64) * info.stride)[:, None]
    high = _gather(src, row_starts + base + (x & 1))
    low = _gather(src, row_starts + base + 2)
    shift = ((x & 1) << 2).astype(np.uint16)
    return (high << 4) | ((low >> shift) & 15)


def unpack_16bit(data, info: StreamInfo) -> np.ndarray:
    """Copy native-order 16-bit samples into a (height, width) uint16 array."""
    src = _source(data)
    line = 2 * info.width
    if info.height and (info.height - 1) * info.stride + line > src.size:
        raise ValueError("not enough raw image data")
    rows = [src[row * info.stride : row * info.stride + line] for row in range(info.height)]
    if not rows:
        return np.zeros((0, info.width), dtype=np.uint16)
    return np.ascontiguousarray(np.stack(rows)).view(np.uint16)


# TIFF field types.
_BYTE, _ASCII, _SHORT, _LONG, _RATIONAL, _SRATIONAL = 1, 2, 3, 4, 5, 10


@dataclass(frozen=True)
class _Field:
    tag: int
    type: int
    count: int
    payload: bytes


def _bytes_field(tag: int, values: Sequence[int]) -> _Field:
    return _Field(tag, _BYTE, len(values), bytes(values))


def _ascii(tag: int, text: str) -> _Field:
    payload = text.encode("utf-8") + b"\0"
    return _Field(tag, _ASCII, len(payload), payload)


def _shorts(tag: int, *values: int) -> _Field:
    return _Field(tag, _SHORT, len(values), struct.pack(f"<{len(values)}H", *values))


def _longs(tag: int, *values: int) -> _Field:
    return _Field(tag, _LONG, len(values), struct.pack(f"<{len(values)}I", *values))


def _to_rational(value: float, signed: bool) -> tuple[int, int]:
    limit = 0x7FFFFFFF if signed else 0xFFFFFFFF
    value = float(value)
    if math.isnan(value):
        return 0, 1
    if not signed and value < 0:
        value = 0.0
    if math.isinf(value):
        return (limit if value > 0 else -limit), 1
    max_den = max(1, min(limit, int(limit / max(abs(value), 1.0))))
    frac = Fraction(value).limit_denominator(max_den)
    return max(-limit, min(limit, frac.numerator)), frac.denominator


def _rationals(tag: int, values: Sequence[float], signed: bool = False) -> _Field:
    flat = [part for v in values for part in _to_rational(v, signed)]
    fmt = "i" if signed else "I"
    return _Field(tag, _SRATIONAL if signed else _RATIONAL, len(values),
                  struct.pack(f"<{len(flat)}{fmt}", *flat))


def _ifd_bytes(fields: Sequence[_Field], offset: int) -> bytes:
    """Serialise an IFD placed at ``offset``, its out-of-line values following it."""
    ordered = sorted(fields, key=lambda f: f.tag)
    data_offset = offset + 2 + 12 * len(ordered) + 4
    head = bytearray(struct.pack("<H", len(ordered)))
    extra = bytearray()
    for field in ordered:
        if len(field.payload) <= 4:
            value = field.payload.ljust(4, b"\0")
        else:
            value = struct.pack("<I", data_offset + len(extra))
            extra += field.payload
            if len(extra) % 2:
                extra += b"\0"
        head += struct.pack("<HHI", field.tag, field.type, field.count) + value
    head += struct.pack("<I", 0)
    return bytes(head + extra)


def _even(n: int) -> int:
    return n + (n & 1)


def _thumbnail(image: np.ndarray, info: StreamInfo, bits: int) -> np.ndarray:
    """Make a small greyscale RGB thumbnail, one pixel per 16x16 block."""
    th, tw = info.height >> 4, info.width >> 4
    rows = np.arange(th) * 16
    cols = np.arange(tw) * 16
    b = image.astype(np.uint32)
    grey = (b[rows][:, cols] + b[rows][:, cols + 1]
            + b[rows + 1][:, cols] + b[rows + 1][:, cols + 1])
    grey = (grey << 14) >> bits
    # A square root as a simple gamma correction.
    grey = (np.sqrt(grey.astype(np.float64)).astype(np.uint32) & 0xFF).astype(np.uint8)
    return np.repeat(grey[:, :, None], 3, axis=2)


def dng_save(planes: Sequence, info: StreamInfo, metadata: Mapping[str, Any] | None,
             filename: str, cam_model: str, options: StillOptions | None) -> None:
    """Write a raw Bayer frame to ``filename`` as a DNG file.

    ``metadata`` may hold SensorBlackLevels, ExposureTime (microseconds),
    AnalogueGain, ColourGains, ColourCorrectionMatrix and LensPosition.
    """
    bayer = _BAYER_FORMATS.get(info.pixel_format)
    if bayer is None:
        raise ValueError("unsupported Bayer format")
    _log.info("Bayer format is %s", bayer.name)
    metadata = metadata or {}

    if bayer.bits == 10:
        image = unpack_10bit(planes[0], info)
    elif bayer.bits == 12:
        image = unpack_12bit(planes[0], info)
    else:
        image = unpack_16bit(planes[0], info)

    scale = (1 << bayer.bits) / 65536.0
    black_levels = [4096 * scale] * 4
    levels = metadata.get("SensorBlackLevels")
    if levels is not None:
        # Levels come as R, Gr, Gb, B; re-order them for the actual Bayer order.
        order = bayer.order
        for i in range(4):
            j = order[i]
            j = 0 if j == 0 else (3 if j == 2 else 1 + bool(order[i ^ 1]))
            black_levels[j] = levels[i] * scale
    else:
        _log.warning("no black level found, using default")

    exposure = metadata.get("ExposureTime")
    exp_time = 10000.0
    if exposure is not None:
        exp_time = float(exposure)
    else:
        _log.warning("default to exposure time of %gus", exp_time)
    exp_time /= 1e6

    gain = metadata.get("AnalogueGain")
    iso = 100
    if gain is not None:
        iso = int(gain * 100.0) & 0xFFFF
    else:
        _log.warning("default to ISO value of %d", iso)

    neutral = [1.0, 1.0, 1.0]
    wb_gains = diagonal(1, 1, 1)
    colour_gains = metadata.get("ColourGains")
    if colour_gains is not None:
        neutral[0] = 1.0 / colour_gains[0]
        neutral[2] = 1.0 / colour_gains[1]
        wb_gains = diagonal(colour_gains[0], 1, colour_gains[1])

    # A plausible default in case the metadata has no colour correction matrix.
    ccm = Matrix(1.90255, -0.77478, -0.12777,
                 -0.31338, 1.88197, -0.56858,
                 -0.06001, -0.61785, 1.67786)
    ccm_values = metadata.get("ColourCorrectionMatrix")
    if ccm_values is not None:
        ccm = Matrix(*ccm_values[:9])
    else:
        _log.warning("no CCM metadata found")

    rgb2xyz = Matrix(0.4124564, 0.3575761, 0.1804375,
                     0.2126729, 0.7151522, 0.0721750,
                     0.0193339, 0.1191920, 0.9503041)
    cam_xyz = (rgb2xyz * ccm * wb_gains).inverse()

    _log.debug("Black levels %s, exposure time %gus, ISO %d", black_levels, exp_time * 1e6, iso)
    _log.debug("Neutral %s", neutral)
    _log.debug("Cam_XYZ: %s", cam_xyz.m)

    thumb = _thumbnail(image, info, bayer.bits).tobytes()
    main = image.astype("<u2").tobytes()
    white = (1 << bayer.bits) - 1

    thumb_offset = 8
    image_offset = _even(thumb_offset + len(thumb))

    exif_fields = [
        _ascii(36867, time.strftime("%Y:%m:%d %H:%M:%S", time.localtime())),
        _shorts(34855, iso),
        _rationals(33434, [exp_time]),
    ]
    lens_position = metadata.get("LensPosition")
    if lens_position is not None:
        distance = 1.0 / lens_position if lens_position > 0.0 else math.inf
        exif_fields.append(_rationals(37382, [distance]))
    exif_offset = _even(image_offset + len(main))
    exif_ifd = _ifd_bytes(exif_fields, exif_offset)

    sub_fields = [
        _longs(254, 0),
        _longs(256, info.width),
        _longs(257, info.height),
        _shorts(258, 16),
        _shorts(259, 1),
        _shorts(262, 32803),
        _longs(273, image_offset),
        _shorts(277, 1),
        _longs(278, info.height),
        _longs(279, len(main)),
        _shorts(284, 1),
        _shorts(33421, 2, 2),
        _bytes_field(33422, bayer.order),
        _longs(50717, white),
        _shorts(50713, 2, 2),
        _rationals(50714, black_levels),
    ]
    sub_offset = exif_offset + len(exif_ifd)
    sub_ifd = _ifd_bytes(sub_fields, sub_offset)

    thumb_height = info.height >> 4
    ifd0_fields = [
        _longs(254, 1),
        _longs(256, info.width >> 4),
        _longs(257, thumb_height),
        _shorts(258, 8, 8, 8),
        _shorts(259, 1),
        _shorts(262, 2),
        _ascii(271, _MAKE),
        _ascii(272, cam_model),
        _longs(273, thumb_offset),
        _shorts(274, 1),
        _shorts(277, 3),
        _longs(278, thumb_height),
        _longs(279, len(thumb)),
        _shorts(284, 1),
        _ascii(305, _SOFTWARE),
        _longs(330, sub_offset),
        _longs(34665, exif_offset),
        _bytes_field(50706, (1, 1, 0, 0)),
        _bytes_field(50707, (1, 0, 0, 0)),
        _ascii(50708, f"{_MAKE} {cam_model}"),
        _rationals(50721, cam_xyz.m, signed=True),
        _rationals(50728, neutral),
        _shorts(50778, 21),
    ]
    ifd0_offset = sub_offset + len(sub_ifd)
    ifd0 = _ifd_bytes(ifd0_fields, ifd0_offset)

    out = bytearray(b"II*\0" + struct.pack("<I", ifd0_offset))
    out += thumb
    out += bytes(image_offset - len(out))
    out += main
    out += bytes(exif_offset - len(out))
    out += exif_ifd
    out += sub_ifd
    out += ifd0

    with open(filename, "wb") as fp:
        fp.write(out)
    _log.debug("Wrote %d bytes to DNG file", len(out))