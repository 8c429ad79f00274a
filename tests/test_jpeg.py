import struct

import numpy as np
import pytest
from PIL import ExifTags, Image

from camencode.jpeg import create_exif_data, jpeg_save
from camencode.stream import PixelFormat, StillOptions, StreamInfo

INFO = StreamInfo(32, 16, 32, PixelFormat.YUV420)


def _frame(width=32, height=16):
    y = (np.arange(width * height) % 251).astype(np.uint8)
    uv = np.full(width * height // 4, 128, dtype=np.uint8)
    return y.tobytes() + uv.tobytes() + uv.tobytes()


def _options(**kwargs):
    defaults = dict(thumb_width=16, thumb_height=8, thumb_quality=70)
    defaults.update(kwargs)
    return StillOptions(**defaults)


def _load(exif_bytes):
    loaded = Image.Exif()
    loaded.load(exif_bytes)
    return loaded


def test_file_structure(tmp_path):
    path = tmp_path / "out.jpg"
    jpeg_save([_frame()], INFO, {}, str(path), "cam", _options())
    data = path.read_bytes()
    assert data[:4] == b"\xff\xd8\xff\xe1"
    segment_len = struct.unpack(">H", data[4:6])[0]
    assert data[6:12] == b"Exif\x00\x00"
    assert data[4 + segment_len : 4 + segment_len + 1] == b"\xff"
    with Image.open(path) as image:
        assert image.size == (INFO.width, INFO.height)
        image.load()
        sub = image.getexif().get_ifd(ExifTags.IFD.Exif)
    assert sub[ExifTags.Base.Make] == "Raspberry Pi"
    assert sub[ExifTags.Base.Model] == "cam"
    assert sub[ExifTags.Base.Software] == "libcamera-apps"


def test_thumbnail_offsets_point_at_thumbnail():
    exif, thumb = create_exif_data([_frame()], INFO, {}, "cam", _options())
    assert thumb[:2] == b"\xff\xd8"
    ifd1 = _load(exif).get_ifd(ExifTags.IFD.IFD1)
    assert ifd1[ExifTags.Base.JpegIFOffset] == len(exif) - 6
    assert ifd1[ExifTags.Base.JpegIFByteCount] == len(thumb)
    with Image.open(__import_bytes(thumb)) as image:
        assert image.size == (16, 8)


def __import_bytes(data):
    import io

    return io.BytesIO(data)


def test_no_thumbnail_when_quality_zero():
    exif, thumb = create_exif_data([_frame()], INFO, {}, "cam", _options(thumb_quality=0))
    assert thumb == b""
    assert dict(_load(exif).get_ifd(ExifTags.IFD.IFD1)) == {}


def test_metadata_tags():
    metadata = {"ExposureTime": 20000, "AnalogueGain": 2.0, "DigitalGain": 1.5, "LensPosition": 2.0}
    exif, _ = create_exif_data([_frame()], INFO, metadata, "cam", _options(thumb_quality=0))
    sub = _load(exif).get_ifd(ExifTags.IFD.Exif)
    assert float(sub[ExifTags.Base.ExposureTime]) == pytest.approx(0.02)
    assert sub[ExifTags.Base.ISOSpeedRatings] == 300
    assert float(sub[ExifTags.Base.SubjectDistance]) == pytest.approx(0.5)


def test_user_exif_items_applied():
    options = _options(thumb_quality=0, exif=["IFD0.Artist=Tester"])
    exif, _ = create_exif_data([_frame()], INFO, None, "cam", options)
    assert _load(exif)[ExifTags.Base.Artist] == "Tester"


def test_bad_user_exif_item_raises():
    options = _options(thumb_quality=0, exif=["XX.Artist=Tester"])
    with pytest.raises(ValueError, match="bad IFD name"):
        create_exif_data([_frame()], INFO, None, "cam", options)


def test_unacceptable_thumbnail_quality():
    with pytest.raises(ValueError, match="acceptable thumbnail"):
        create_exif_data([_frame()], INFO, {}, "cam", _options(thumb_quality=-5))


def test_odd_size_rejected(tmp_path):
    info = StreamInfo(31, 16, 32, PixelFormat.YUV420)
    with pytest.raises(ValueError, match="even"):
        jpeg_save([_frame()], info, {}, str(tmp_path / "x.jpg"), "cam", _options())


def test_multiple_planes_rejected(tmp_path):
    with pytest.raises(ValueError, match="single plane"):
        jpeg_save([_frame(), _frame()], INFO, {}, str(tmp_path / "x.jpg"), "cam", _options())


def test_unsupported_pixel_format(tmp_path):
    info = StreamInfo(32, 16, 96, PixelFormat.RGB888)
    with pytest.raises(ValueError, match="unsupported YUV format"):
        jpeg_save([bytes(96 * 16)], info, {}, str(tmp_path / "x.jpg"), "cam", _options())


def test_write_to_stdout(capsysbinary):
    jpeg_save([_frame()], INFO, {}, "-", "cam", _options(thumb_quality=0))
    out = capsysbinary.readouterr().out
    assert out[:4] == b"\xff\xd8\xff\xe1"
    assert out[6:12] == b"Exif\x00\x00"
    assert out[-2:] == b"\xff\xd9"