import pytest

from camencode.stream import PixelFormat, StillOptions, StreamInfo
from camencode.yuv import yuv_save

YUV420 = StillOptions(encoding="yuv420")
RGB = StillOptions(encoding="rgb")


def test_yuv420_strips_stride_padding(tmp_path):
    data = bytes([1, 2, 90, 91, 3, 4, 92, 93, 5, 94, 6, 95])
    info = StreamInfo(2, 2, 4, PixelFormat.YUV420)
    path = tmp_path / "out.yuv"
    yuv_save([data], info, str(path), YUV420)
    assert path.read_bytes() == bytes([1, 2, 3, 4, 5, 6])


def test_yuv420_output_length(tmp_path):
    info = StreamInfo(8, 4, 16, PixelFormat.YUV420)
    data = bytes(16 * 4 + 8 * 2 * 2)
    path = tmp_path / "out.yuv"
    yuv_save([data], info, str(path), YUV420)
    assert len(path.read_bytes()) == 8 * 4 * 3 // 2


def test_yuyv_converted_to_planar(tmp_path):
    data = bytes([1, 5, 2, 6, 3, 7, 4, 8])
    info = StreamInfo(2, 2, 4, PixelFormat.YUYV)
    path = tmp_path / "out.yuv"
    yuv_save([data], info, str(path), YUV420)
    assert path.read_bytes() == bytes([1, 2, 3, 4, 5, 6])


def test_rgb_rows_written_without_padding(tmp_path):
    data = bytes([1, 2, 3, 99, 4, 5, 6, 99])
    info = StreamInfo(1, 2, 4, PixelFormat.BGR888)
    path = tmp_path / "out.rgb"
    yuv_save([data], info, str(path), RGB)
    assert path.read_bytes() == bytes([1, 2, 3, 4, 5, 6])


def test_dash_writes_to_stdout(capsysbinary):
    data = bytes([1, 2, 3, 99, 4, 5, 6, 99])
    info = StreamInfo(1, 2, 4, PixelFormat.RGB888)
    yuv_save([data], info, "-", RGB)
    assert capsysbinary.readouterr().out == bytes([1, 2, 3, 4, 5, 6])


def test_odd_dimensions_rejected(tmp_path):
    info = StreamInfo(3, 2, 4, PixelFormat.YUV420)
    with pytest.raises(ValueError, match="even"):
        yuv_save([bytes(32)], info, str(tmp_path / "x"), YUV420)


def test_plane_count_checked(tmp_path):
    info = StreamInfo(2, 2, 2, PixelFormat.YUV420)
    with pytest.raises(ValueError, match="number of planes"):
        yuv_save([bytes(6), bytes(6)], info, str(tmp_path / "x"), YUV420)


def test_wrong_encoding_for_yuv(tmp_path):
    info = StreamInfo(2, 2, 4, PixelFormat.YUYV)
    with pytest.raises(ValueError, match="output format jpg not supported"):
        yuv_save([bytes(8)], info, str(tmp_path / "x"), StillOptions(encoding="jpg"))


def test_wrong_encoding_for_rgb(tmp_path):
    info = StreamInfo(1, 1, 3, PixelFormat.RGB888)
    with pytest.raises(ValueError, match="encoding should be set to rgb"):
        yuv_save([bytes(3)], info, str(tmp_path / "x"), YUV420)


def test_unrecognised_format(tmp_path):
    info = StreamInfo(2, 2, 4, PixelFormat.SRGGB16)
    with pytest.raises(ValueError, match="unrecognised"):
        yuv_save([bytes(8)], info, str(tmp_path / "x"), YUV420)
    assert not (tmp_path / "x").exists()