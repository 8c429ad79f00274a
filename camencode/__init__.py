"""Still image writers for raw camera frames: JPEG with EXIF, DNG and raw YUV/RGB."""

__version__ = "0.1.0"

__all__ = ["stream", "yuv_jpeg", "yuv", "dng", "exif", "jpeg"]