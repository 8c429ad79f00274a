"""Saving of uncompressed YUV and RGB frames."""

from __future__ import annotations

import contextlib
import sys
from typing import BinaryIO, Iterator, Sequence

import numpy as np

from camencode.stream import PixelFormat, StillOptions, StreamInfo


@contextlib.contextmanager
def _open_output(filename: str) -> Iterator[BinaryIO]:
    if filename == "-":
        out = sys.stdout.buffer
        yield out
        out.flush()
    else:
        with open(filename, "wb") as out:
            yield out


def _rows(src: np.ndarray, start: int, count: int, stride: int, length: int) -> Iterator[bytes]:
    for row in range(count):
        offset = start + row * stride
        yield src[offset : offset + length].tobytes()


def _yuv420_save(planes: Sequence, info: StreamInfo, filename: str, options: StillOptions) -> None:
    if options.encoding != "yuv420":
        raise ValueError(f"output format {options.encoding} not supported")
    width, height, stride = info.width, info.height, info.stride
    if width % 2 or height % 2:
        raise ValueError("both width and height must be even")
    if len(planes) != 1:
        raise ValueError("incorrect number of planes in YUV420 data")
    src = np.frombuffer(planes[0], dtype=np.uint8)
    u_start = stride * height
    v_start = u_start + (stride // 2) * (height // 2)
    with _open_output(filename) as out:
        out.writelines(_rows(src, 0, height, stride, width))
        out.writelines(_rows(src, u_start, height // 2, stride // 2, width // 2))
        out.writelines(_rows(src, v_start, height // 2, stride // 2, width // 2))


def _yuyv_save(planes: Sequence, info: StreamInfo, filename: str, options: StillOptions) -> None:
    if options.encoding != "yuv420":
        raise ValueError(f"output format {options.encoding} not supported")
    if info.width % 2 or info.height % 2:
        raise ValueError("both width and height must be even")
    src = np.frombuffer(planes[0], dtype=np.uint8)
    width, half = info.width, info.width // 2
    packed = [src[row * info.stride : row * info.stride + 2 * width] for row in range(info.height)]
    with _open_output(filename) as out:
        for row in packed:
            out.write(row[0::2][:width].tobytes())
        for row in packed[::2]:
            out.write(row[1::4][:half].tobytes())
        for row in packed[::2]:
            out.write(row[3::4][:half].tobytes())


def _rgb_save(planes: Sequence, info: StreamInfo, filename: str, options: StillOptions) -> None:
    if options.encoding != "rgb":
        raise ValueError("encoding should be set to rgb")
    src = np.frombuffer(planes[0], dtype=np.uint8)
    with _open_output(filename) as out:
        out.writelines(_rows(src, 0, info.height, info.stride, 3 * info.width))


def yuv_save(planes: Sequence, info: StreamInfo, filename: str, options: StillOptions) -> None:
    """Write the frame's raw samples to ``filename`` ("-" for standard output)."""
    if info.pixel_format is PixelFormat.YUYV:
        _yuyv_save(planes, info, filename, options)
    elif info.pixel_format is PixelFormat.YUV420:
        _yuv420_save(planes, info, filename, options)
    elif info.pixel_format in (PixelFormat.BGR888, PixelFormat.RGB888):
        _rgb_save(planes, info, filename, options)
    else:
        raise ValueError("unrecognised YUV/RGB save format")