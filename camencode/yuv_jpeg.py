"""Compression of YUV frames to JPEG, with optional resampling."""

from __future__ import annotations

import io

import numpy as np
from PIL import Image

from camencode.stream import PixelFormat, StreamInfo


def _as_array(data) -> np.ndarray:
    return np.frombuffer(data, dtype=np.uint8)


def _index(count: int) -> np.ndarray:
    return np.arange(count, dtype=np.int64)


def _compress(y: np.ndarray, u: np.ndarray, v: np.ndarray, quality: int, restart: int) -> bytes:
    """Compress full-resolution Y, Cb and Cr planes as a 4:2:0 JPEG."""
    height, width = y.shape
    pixels = np.ascontiguousarray(np.stack([y, u, v], axis=-1).astype(np.uint8))
    image = Image.frombytes("YCbCr", (width, height), pixels.tobytes())
    params = {"quality": int(quality), "subsampling": 2}
    if restart:
        params["restart_marker_blocks"] = int(restart)
    out = io.BytesIO()
    image.save(out, format="JPEG", **params)
    return out.getvalue()


def yuyv_to_jpeg(data, info: StreamInfo, output_width: int, output_height: int,
                 quality: int, restart: int) -> bytes:
    """Compress a packed YUYV frame, resampled to the output size."""
    src = _as_array(data)
    cols = _index(output_width) * info.width // output_width * 2
    aligned = cols & ~3
    rows = (_index(output_height) * info.height // output_height) * info.stride
    base = rows[:, None]
    y = src[base + cols]
    u = src[base + aligned + 1]
    v = src[base + aligned + 3]
    return _compress(y, u, v, quality, restart)


def _yuv420_fast(src: np.ndarray, info: StreamInfo, quality: int, restart: int) -> bytes:
    stride2 = info.stride // 2
    u_start = info.stride * info.height
    v_start = u_start + stride2 * (info.height // 2)
    rows = _index(info.height)
    cols = _index(info.width)
    # Chroma rows past the last one repeat it, as the plane ends there.
    chroma_rows = np.minimum(rows // 2, max(info.height // 2 - 1, 0)) * stride2
    y = src[(rows * info.stride)[:, None] + cols]
    u = src[u_start + chroma_rows[:, None] + cols // 2]
    v = src[v_start + chroma_rows[:, None] + cols // 2]
    return _compress(y, u, v, quality, restart)


def yuv420_to_jpeg(data, info: StreamInfo, output_width: int, output_height: int,
                   quality: int, restart: int) -> bytes:
    """Compress a planar YUV420 frame, resampled to the output size."""
    src = _as_array(data)
    if info.width == output_width and info.height == output_height:
        return _yuv420_fast(src, info, quality, restart)

    stride2 = info.stride // 2
    u_start = info.stride * info.height
    v_start = u_start + stride2 * (info.height // 2)
    cols = _index(output_width) * info.width // output_width
    lines = _index(output_height)
    rows = (lines * info.height // output_height) * info.stride
    rows_uv = ((lines // 2) * info.height // output_height) * stride2
    y = src[rows[:, None] + cols]
    u = src[u_start + rows_uv[:, None] + cols // 2]
    v = src[v_start + rows_uv[:, None] + cols // 2]
    return _compress(y, u, v, quality, restart)


def yuv_to_jpeg(data, info: StreamInfo, output_width: int, output_height: int,
                quality: int, restart: int) -> bytes:
    """Compress a YUYV or YUV420 frame to JPEG."""
    if info.pixel_format is PixelFormat.YUYV:
        return yuyv_to_jpeg(data, info, output_width, output_height, quality, restart)
    if info.pixel_format is PixelFormat.YUV420:
        return yuv420_to_jpeg(data, info, output_width, output_height, quality, restart)
    raise ValueError("unsupported YUV format in JPEG encode")