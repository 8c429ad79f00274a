"""A small EXIF block builder: entries, text parsing of tags and serialisation."""

from __future__ import annotations

import enum
import logging
import re
import struct
from dataclasses import dataclass, field
from typing import Callable, NamedTuple

_log = logging.getLogger(__name__)


class ExifIfd(enum.Enum):
    """The image file directories an EXIF block may hold."""

    IFD_0 = 0
    IFD_1 = 1
    EXIF = 2
    GPS = 3
    INTEROPERABILITY = 4


class ExifFormat(enum.IntEnum):
    """Storage formats of EXIF values, numbered as in the TIFF format."""

    BYTE = 1
    ASCII = 2
    SHORT = 3
    LONG = 4
    RATIONAL = 5
    SBYTE = 6
    UNDEFINED = 7
    SSHORT = 8
    SLONG = 9
    SRATIONAL = 10
    FLOAT = 11
    DOUBLE = 12


_FORMAT_SIZES = {
    ExifFormat.BYTE: 1,
    ExifFormat.ASCII: 1,
    ExifFormat.SHORT: 2,
    ExifFormat.LONG: 4,
    ExifFormat.RATIONAL: 8,
    ExifFormat.SBYTE: 1,
    ExifFormat.UNDEFINED: 1,
    ExifFormat.SSHORT: 2,
    ExifFormat.SLONG: 4,
    ExifFormat.SRATIONAL: 8,
    ExifFormat.FLOAT: 4,
    ExifFormat.DOUBLE: 8,
}


@dataclass
class ExifEntry:
    """One tag's value: its format, number of components and raw bytes."""

    tag: int
    format: ExifFormat | None
    components: int
    data: bytearray = field(default_factory=bytearray)


class _TagInfo(NamedTuple):
    tag: int
    format: ExifFormat
    components: int
    domain: str


_F = ExifFormat
_TAGS: dict[str, _TagInfo] = {
    name: _TagInfo(tag, fmt, count, domain)
    for name, tag, fmt, count, domain in [
        ("ImageWidth", 0x0100, _F.SHORT, 1, "main"),
        ("ImageLength", 0x0101, _F.SHORT, 1, "main"),
        ("BitsPerSample", 0x0102, _F.SHORT, 3, "main"),
        ("Compression", 0x0103, _F.SHORT, 1, "main"),
        ("ImageDescription", 0x010E, _F.ASCII, 0, "main"),
        ("Make", 0x010F, _F.ASCII, 0, "main"),
        ("Model", 0x0110, _F.ASCII, 0, "main"),
        ("Orientation", 0x0112, _F.SHORT, 1, "main"),
        ("XResolution", 0x011A, _F.RATIONAL, 1, "main"),
        ("YResolution", 0x011B, _F.RATIONAL, 1, "main"),
        ("ResolutionUnit", 0x0128, _F.SHORT, 1, "main"),
        ("Software", 0x0131, _F.ASCII, 0, "main"),
        ("DateTime", 0x0132, _F.ASCII, 0, "main"),
        ("Artist", 0x013B, _F.ASCII, 0, "main"),
        ("WhitePoint", 0x013E, _F.RATIONAL, 2, "main"),
        ("PrimaryChromaticities", 0x013F, _F.RATIONAL, 6, "main"),
        ("JPEGInterchangeFormat", 0x0201, _F.LONG, 1, "main"),
        ("JPEGInterchangeFormatLength", 0x0202, _F.LONG, 1, "main"),
        ("YCbCrCoefficients", 0x0211, _F.UNDEFINED, 0, "main"),
        ("YCbCrPositioning", 0x0213, _F.SHORT, 1, "main"),
        ("ReferenceBlackWhite", 0x0214, _F.RATIONAL, 6, "main"),
        ("Copyright", 0x8298, _F.ASCII, 0, "main"),
        ("ExposureTime", 0x829A, _F.RATIONAL, 1, "main"),
        ("FNumber", 0x829D, _F.RATIONAL, 1, "main"),
        ("ExposureProgram", 0x8822, _F.SHORT, 1, "main"),
        ("ISOSpeedRatings", 0x8827, _F.SHORT, 1, "main"),
        ("ExifVersion", 0x9000, _F.UNDEFINED, 4, "main"),
        ("DateTimeOriginal", 0x9003, _F.ASCII, 0, "main"),
        ("DateTimeDigitized", 0x9004, _F.ASCII, 0, "main"),
        ("ShutterSpeedValue", 0x9201, _F.SRATIONAL, 1, "main"),
        ("ApertureValue", 0x9202, _F.RATIONAL, 1, "main"),
        ("BrightnessValue", 0x9203, _F.SRATIONAL, 1, "main"),
        ("ExposureBiasValue", 0x9204, _F.SRATIONAL, 1, "main"),
        ("MaxApertureValue", 0x9205, _F.RATIONAL, 1, "main"),
        ("SubjectDistance", 0x9206, _F.RATIONAL, 1, "main"),
        ("MeteringMode", 0x9207, _F.SHORT, 1, "main"),
        ("LightSource", 0x9208, _F.SHORT, 1, "main"),
        ("Flash", 0x9209, _F.SHORT, 1, "main"),
        ("FocalLength", 0x920A, _F.RATIONAL, 1, "main"),
        ("SubjectArea", 0x9214, _F.SHORT, 0, "main"),
        ("MakerNote", 0x927C, _F.UNDEFINED, 0, "main"),
        ("UserComment", 0x9286, _F.UNDEFINED, 0, "main"),
        ("ColorSpace", 0xA001, _F.SHORT, 1, "main"),
        ("PixelXDimension", 0xA002, _F.LONG, 1, "main"),
        ("PixelYDimension", 0xA003, _F.LONG, 1, "main"),
        ("ExposureMode", 0xA402, _F.SHORT, 1, "main"),
        ("WhiteBalance", 0xA403, _F.SHORT, 1, "main"),
        ("DigitalZoomRatio", 0xA404, _F.RATIONAL, 1, "main"),
        ("FocalLengthIn35mmFilm", 0xA405, _F.SHORT, 1, "main"),
        ("SceneCaptureType", 0xA406, _F.SHORT, 1, "main"),
        ("ImageUniqueID", 0xA420, _F.ASCII, 0, "main"),
        ("InteroperabilityIndex", 0x0001, _F.ASCII, 0, "interop"),
        ("GPSLatitudeRef", 0x0001, _F.ASCII, 2, "gps"),
        ("GPSLatitude", 0x0002, _F.RATIONAL, 3, "gps"),
        ("GPSLongitudeRef", 0x0003, _F.ASCII, 2, "gps"),
        ("GPSLongitude", 0x0004, _F.RATIONAL, 3, "gps"),
        ("GPSAltitudeRef", 0x0005, _F.BYTE, 1, "gps"),
        ("GPSAltitude", 0x0006, _F.RATIONAL, 1, "gps"),
    ]
}
_BY_NUMBER = {(info.domain, info.tag): info for info in _TAGS.values()}

# Tags whose format the tag table leaves undefined but which are known.
_EXCEPTIONS = {0x0211: (ExifFormat.RATIONAL, 3)}

_IFD_NAMES = {
    "EXIF": ExifIfd.EXIF,
    "IFD0": ExifIfd.IFD_0,
    "IFD1": ExifIfd.IFD_1,
    "EINT": ExifIfd.INTEROPERABILITY,
    "GPS": ExifIfd.GPS,
}

_LAYOUT = (ExifIfd.IFD_0, ExifIfd.EXIF, ExifIfd.INTEROPERABILITY, ExifIfd.GPS, ExifIfd.IFD_1)
_POINTER_TAGS = {ExifIfd.EXIF: 0x8769, ExifIfd.GPS: 0x8825, ExifIfd.INTEROPERABILITY: 0xA005}
_CHILDREN = {
    ExifIfd.IFD_0: (ExifIfd.EXIF, ExifIfd.GPS),
    ExifIfd.EXIF: (ExifIfd.INTEROPERABILITY,),
}


def _domain(ifd: ExifIfd) -> str:
    if ifd is ExifIfd.GPS:
        return "gps"
    if ifd is ExifIfd.INTEROPERABILITY:
        return "interop"
    return "main"


_Field = tuple[int, int, int, bytes]


def _even(n: int) -> int:
    return n + (n & 1)


def _ifd_size(fields: list[_Field]) -> int:
    return 2 + 12 * len(fields) + 4 + sum(_even(len(p)) for *_, p in fields if len(p) > 4)


def _ifd_bytes(fields: list[_Field], offset: int, next_offset: int) -> bytes:
    data_offset = offset + 2 + 12 * len(fields) + 4
    head = bytearray(struct.pack("<H", len(fields)))
    extra = bytearray()
    for tag, kind, count, payload in fields:
        if len(payload) <= 4:
            value = payload.ljust(4, b"\0")
        else:
            value = struct.pack("<I", data_offset + len(extra))
            extra += payload
            if len(extra) % 2:
                extra += b"\0"
        head += struct.pack("<HHI", tag, kind, count) + value
    head += struct.pack("<I", next_offset)
    return bytes(head + extra)


class ExifData:
    """A set of EXIF entries grouped by directory, written little-endian."""

    def __init__(self) -> None:
        self._ifds: dict[ExifIfd, dict[int, ExifEntry]] = {ifd: {} for ifd in ExifIfd}

    def entry(self, ifd: ExifIfd, tag: int | str) -> ExifEntry:
        """Return the entry for ``tag`` (number or name), creating it if absent.

        A new entry gets the tag's usual format and zero-filled data; a tag
        whose format is unknown gets format None.
        """
        if isinstance(tag, str):
            info = _TAGS.get(tag)
            if info is None:
                raise ValueError(f"no EXIF tag {tag}")
            number = info.tag
        else:
            number = tag
            info = _BY_NUMBER.get((_domain(ifd), tag))
        content = self._ifds[ifd]
        existing = content.get(number)
        if existing is not None:
            return existing
        if info is None:
            created = ExifEntry(number, None, 0)
        else:
            size = info.components * _FORMAT_SIZES[info.format]
            created = ExifEntry(number, info.format, info.components, bytearray(size))
        content[number] = created
        return created

    def _fields(self, ifd: ExifIfd, present: set[ExifIfd], offsets: dict[ExifIfd, int]) -> list[_Field]:
        fields: list[_Field] = [
            (e.tag, int(e.format), len(e.data) if e.format in (ExifFormat.ASCII, ExifFormat.UNDEFINED,
                                                               ExifFormat.BYTE, ExifFormat.SBYTE)
             else e.components, bytes(e.data))
            for e in self._ifds[ifd].values()
            if e.format is not None
        ]
        for child in _CHILDREN.get(ifd, ()):
            if child in present:
                fields.append((_POINTER_TAGS[child], int(ExifFormat.LONG), 1,
                               struct.pack("<I", offsets.get(child, 0))))
        return sorted(fields, key=lambda f: f[0])

    def to_bytes(self) -> bytes:
        """Serialise as an "Exif" header followed by a little-endian TIFF block."""
        present = {ifd for ifd, content in self._ifds.items()
                   if any(e.format is not None for e in content.values())}
        present.add(ExifIfd.IFD_0)
        if ExifIfd.INTEROPERABILITY in present:
            present.add(ExifIfd.EXIF)
        order = [ifd for ifd in _LAYOUT if ifd in present]

        offsets: dict[ExifIfd, int] = {}
        position = 8
        for ifd in order:
            offsets[ifd] = position
            position += _ifd_size(self._fields(ifd, present, {}))

        out = bytearray(b"Exif\0\0II*\0" + struct.pack("<I", 8))
        for ifd in order:
            next_offset = offsets.get(ExifIfd.IFD_1, 0) if ifd is ExifIfd.IFD_0 else 0
            out += _ifd_bytes(self._fields(ifd, present, offsets), offsets[ifd], next_offset)
        return bytes(out)


def _reader(pattern: str, fmt: str, what: str) -> Callable[[str, int], tuple[int, bytes]]:
    regex = re.compile(pattern)
    masks = [(1 << (8 * struct.calcsize("<" + c))) - 1 for c in fmt]

    def read(text: str, pos: int) -> tuple[int, bytes]:
        match = regex.match(text, pos)
        if match is None:
            raise ValueError(f"failed to read EXIF {what}")
        values = [int(g) & mask for g, mask in zip(match.groups(), masks)]
        return match.end() - pos, struct.pack("<" + fmt, *values)

    return read


_INT = r"\s*([+-]?\d+)"
_RATIO = _INT + r"/" + _INT
_READERS = {
    ExifFormat.SHORT: _reader(_INT, "H", "unsigned short"),
    ExifFormat.SSHORT: _reader(_INT, "H", "signed short"),
    ExifFormat.LONG: _reader(_INT, "I", "unsigned long"),
    ExifFormat.SLONG: _reader(_INT, "I", "signed long"),
    ExifFormat.RATIONAL: _reader(_RATIO, "II", "unsigned rational"),
    ExifFormat.SRATIONAL: _reader(_RATIO, "II", "signed rational"),
}

_HEADER = re.compile(r"([^.]{1,4})\.([^=]{1,127})=")


def _set_string(entry: ExifEntry, text: str) -> None:
    encoded = text.encode("utf-8")
    entry.format = ExifFormat.ASCII
    entry.components = len(encoded)
    entry.data = bytearray(encoded)


def read_exif_tag(exif: ExifData, text: str) -> None:
    """Add a tag given as "IFD.TagName=value[,value...]" to ``exif``.

    Unknown tags, and tags of unknown format, are ignored with a warning.
    """
    match = _HEADER.match(text)
    if match is None:
        raise ValueError("failed to read EXIF IFD and tag")
    ifd_name, tag_name = match.groups()
    ifd = _IFD_NAMES.get(ifd_name)
    if ifd is None:
        raise ValueError(f"bad IFD name {ifd_name}")
    if tag_name not in _TAGS:
        _log.warning("no EXIF tag %s found - ignoring", tag_name)
        return

    entry = exif.entry(ifd, tag_name)
    if entry.format is None:
        _log.warning("format for EXIF tag %s unknown - ignoring", tag_name)
        return
    if entry.format is ExifFormat.UNDEFINED:
        exception = _EXCEPTIONS.get(entry.tag)
        if exception is not None:
            entry.format, entry.components = exception
        else:
            _log.warning("format for tag %s undefined - treating as ASCII", tag_name)
            entry.format = ExifFormat.ASCII

    pos = match.end()
    if entry.format is ExifFormat.ASCII:
        _set_string(entry, text[pos:])
        return
    read = _READERS.get(entry.format)
    if read is None:
        raise ValueError(f"cannot read values of EXIF format {entry.format.name} for tag {tag_name}")

    item_size = _FORMAT_SIZES[entry.format]
    if not entry.data or entry.components == 0:
        if entry.components == 0:
            entry.components = text[pos:].count(",") + 1
        entry.data = bytearray(entry.components * item_size)
    for i in range(entry.components):
        if pos >= len(text):
            raise ValueError(f"too few parameters for EXIF tag {tag_name}")
        consumed, packed = read(text, pos)
        entry.data[i * item_size : (i + 1) * item_size] = packed
        pos += consumed + 1  # skip the separating comma