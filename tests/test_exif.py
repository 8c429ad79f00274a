import struct

import pytest
from PIL import ExifTags, Image

from camencode.exif import ExifData, ExifFormat, ExifIfd, read_exif_tag


def _load(exif: ExifData) -> Image.Exif:
    loaded = Image.Exif()
    loaded.load(exif.to_bytes())
    return loaded


def test_empty_block_layout():
    assert ExifData().to_bytes() == b"Exif\x00\x00II*\x00\x08\x00\x00\x00" + b"\x00\x00" + b"\x00" * 4


def test_ascii_tag():
    exif = ExifData()
    read_exif_tag(exif, "IFD0.Artist=Someone")
    entry = exif.entry(ExifIfd.IFD_0, "Artist")
    assert entry.format is ExifFormat.ASCII
    assert entry.data == bytearray(b"Someone")
    assert entry.components == len("Someone")


def test_rational_tag_bytes():
    exif = ExifData()
    read_exif_tag(exif, "EXIF.FNumber=28/10")
    assert bytes(exif.entry(ExifIfd.EXIF, "FNumber").data) == struct.pack("<II", 28, 10)


def test_variable_components_counted_from_commas():
    exif = ExifData()
    read_exif_tag(exif, "EXIF.SubjectArea=1,2,3")
    entry = exif.entry(ExifIfd.EXIF, "SubjectArea")
    assert entry.components == 3
    assert bytes(entry.data) == struct.pack("<3H", 1, 2, 3)


def test_signed_rational_with_whitespace():
    exif = ExifData()
    read_exif_tag(exif, "EXIF.ExposureBiasValue= -1/3")
    assert bytes(exif.entry(ExifIfd.EXIF, "ExposureBiasValue").data) == struct.pack("<ii", -1, 3)


def test_ycbcr_coefficients_exception():
    exif = ExifData()
    read_exif_tag(exif, "IFD0.YCbCrCoefficients=299/1000,587/1000,114/1000")
    entry = exif.entry(ExifIfd.IFD_0, "YCbCrCoefficients")
    assert entry.format is ExifFormat.RATIONAL
    assert entry.components == 3
    assert bytes(entry.data) == struct.pack("<6I", 299, 1000, 587, 1000, 114, 1000)


def test_undefined_format_treated_as_ascii():
    exif = ExifData()
    read_exif_tag(exif, "EXIF.UserComment=hello")
    entry = exif.entry(ExifIfd.EXIF, "UserComment")
    assert entry.format is ExifFormat.ASCII
    assert entry.data == bytearray(b"hello")


def test_too_few_parameters():
    with pytest.raises(ValueError, match="too few parameters"):
        read_exif_tag(ExifData(), "GPS.GPSLatitude=1/1,2/1")


def test_bad_ifd_name():
    with pytest.raises(ValueError, match="bad IFD name FOO"):
        read_exif_tag(ExifData(), "FOO.Make=x")


def test_malformed_text():
    with pytest.raises(ValueError, match="IFD and tag"):
        read_exif_tag(ExifData(), "nothing here")


def test_bad_number():
    with pytest.raises(ValueError, match="rational"):
        read_exif_tag(ExifData(), "EXIF.FNumber=abc")


def test_unknown_tag_is_ignored():
    exif = ExifData()
    before = exif.to_bytes()
    read_exif_tag(exif, "EXIF.NoSuchTag=1")
    assert exif.to_bytes() == before


def test_unknown_name_in_entry_raises():
    with pytest.raises(ValueError):
        ExifData().entry(ExifIfd.EXIF, "NoSuchTag")


def test_entry_changes_are_seen_on_later_lookup():
    exif = ExifData()
    first = exif.entry(ExifIfd.EXIF, "Make")
    first.data = bytearray(b"Maker")
    assert exif.entry(ExifIfd.EXIF, "Make").data == bytearray(b"Maker")


def test_round_trip_through_reader():
    exif = ExifData()
    read_exif_tag(exif, "IFD0.Artist=Tester")
    read_exif_tag(exif, "EXIF.FNumber=28/10")
    read_exif_tag(exif, "EXIF.Make=Maker")
    loaded = _load(exif)
    assert loaded[ExifTags.Base.Artist] == "Tester"
    sub = loaded.get_ifd(ExifTags.IFD.Exif)
    assert float(sub[ExifTags.Base.FNumber]) == pytest.approx(2.8)
    assert sub[ExifTags.Base.Make] == "Maker"


def test_gps_directory_round_trip():
    exif = ExifData()
    read_exif_tag(exif, "GPS.GPSLatitude=51/1,30/1,0/1")
    read_exif_tag(exif, "GPS.GPSLatitudeRef=N")
    gps = _load(exif).get_ifd(ExifTags.IFD.GPSInfo)
    assert [float(v) for v in gps[ExifTags.GPS.GPSLatitude]] == [51.0, 30.0, 0.0]
    assert gps[ExifTags.GPS.GPSLatitudeRef] == "N"


def test_ifd1_is_linked_after_ifd0():
    exif = ExifData()
    read_exif_tag(exif, "IFD1.Compression=6")
    ifd1 = _load(exif).get_ifd(ExifTags.IFD.IFD1)
    assert ifd1[ExifTags.Base.Compression] == 6


def test_length_stable_when_values_change():
    exif = ExifData()
    entry = exif.entry(ExifIfd.IFD_1, "JPEGInterchangeFormat")
    first = len(exif.to_bytes())
    entry.data = bytearray(struct.pack("<I", 123456))
    assert len(exif.to_bytes()) == first