from .base import EncoderError, EncoderTimeoutError, EncoderUnavailableError
from .magick import SecondaryEncoder
from .raster import RasterEncoder, svg_rasterizer_available
from .vector import VectorOptimizer
from .video import VideoEncoder

__all__ = [
    "EncoderError",
    "EncoderTimeoutError",
    "EncoderUnavailableError",
    "RasterEncoder",
    "SecondaryEncoder",
    "VectorOptimizer",
    "VideoEncoder",
    "svg_rasterizer_available",
]
