# camencode

Writers that save a single raw frame from a camera pipeline as an image file.

- `camencode.jpeg.jpeg_save`: a JPEG from YUV420 or YUYV data, with an EXIF block and an optional thumbnail.
- `camencode.dng.dng_save`: a raw DNG from 10-bit or 12-bit CSI-2 packed, or 16-bit, Bayer data.
- `camencode.yuv.yuv_save`: uncompressed planar YUV420 (from YUV420 or YUYV frames) or packed RGB.

The JPEG and YUV writers send their output to standard output when the file name is `-`. The DNG writer always writes to the named file.

## Installation

```
pip install camencode
```

## Describing a frame

`camencode.stream` holds the types every writer takes:

- `PixelFormat`: the pixel layouts, such as `YUV420`, `YUYV`, `RGB888`, `BGR888` and the Bayer formats `SRGGB10_CSI2P` to `SGBRG16`.
- `StreamInfo(width, height, stride, pixel_format, colour_space=None)`: the geometry of a frame; `stride` is the number of bytes per row.
- `StillOptions`: `encoding`, `quality`, `restart`, `thumb_width`, `thumb_height`, `thumb_quality`, `exif` and others.

Frame data is passed as a sequence of planes, each a bytes-like object; the writers expect a single plane.

## JPEG with EXIF

```python
from camencode.jpeg import jpeg_save
from camencode.stream import PixelFormat, StillOptions, StreamInfo

info = StreamInfo(width=640, height=480, stride=640, pixel_format=PixelFormat.YUV420)
options = StillOptions(quality=93, exif=["EXIF.FNumber=4/1"])
jpeg_save([yuv_bytes], info, {"ExposureTime": 10000}, "photo.jpg", "imx477", options)
```

Width and height must both be even. The metadata mapping may hold `ExposureTime` (microseconds), `AnalogueGain`, `DigitalGain` and `LensPosition`; these fill the exposure time, ISO and subject distance tags. Make, model, software and the current date and time are always written.

When `thumb_quality` is non-zero a thumbnail of `thumb_width` by `thumb_height` is embedded; its quality is lowered in steps of 5 until it is under 60000 bytes, and `ValueError` is raised if that cannot be reached. `camencode.jpeg.create_exif_data` returns the EXIF block and the thumbnail on their own.

Extra EXIF tags take the form `IFD.TagName=value`, where IFD is one of `EXIF`, `IFD0`, `IFD1`, `EINT` or `GPS`. Values with several components are separated by commas, and rationals are written `num/den`. Unknown tag names are skipped with a warning. The same parsing is available directly:

```python
from camencode.exif import ExifData, read_exif_tag

exif = ExifData()
read_exif_tag(exif, "GPS.GPSLatitude=51/1,30/1,0/1")
block = exif.to_bytes()
```

`camencode.yuv_jpeg.yuv_to_jpeg(data, info, output_width, output_height, quality, restart)` compresses a YUV420 or YUYV frame to JPEG bytes, resampling to the requested size.

## DNG

```python
from camencode.dng import dng_save

info = StreamInfo(width=4056, height=3040, stride=6112, pixel_format=PixelFormat.SRGGB12_CSI2P)
dng_save([raw_bytes], info, {"AnalogueGain": 2.0}, "photo.dng", "imx477", None)
```

The metadata may hold `SensorBlackLevels`, `ExposureTime`, `AnalogueGain`, `ColourGains`, `ColourCorrectionMatrix` and `LensPosition`; missing values fall back to defaults with a logged warning. The file holds a small greyscale thumbnail as the first image, the full Bayer image as a sub-image and an EXIF directory. The unpacking helpers `unpack_10bit`, `unpack_12bit` and `unpack_16bit` return a `(height, width)` numpy array of 16-bit samples.

## Raw YUV and RGB

```python
from camencode.yuv import yuv_save

yuv_save([frame], info, "frame.yuv", StillOptions(encoding="yuv420"))
```

YUV420 and YUYV frames need `encoding="yuv420"`; RGB888 and BGR888 frames need `encoding="rgb"`. Any other combination raises `ValueError`.

## What this package does not do

It encodes no video: there is no streaming encoder, and `VideoOptions` in `camencode.stream` is only a settings record that nothing in the package reads. It has no PNG or BMP writer, and no command-line program.

## Tests

```
pip install -e .[test]
pytest
```