"""SVG optimizer backed by Scour."""
import logging
from xml.dom import minidom
from xml.parsers.expat import ExpatError

from scour import scour

from mediaconv.conversion.encoders.base import EncoderError

logger = logging.getLogger("mediaconv.encoders.vector")

# Scour counts significant digits; coordinates are usually in the hundreds, so
# two decimals needs five digits.
_INTEGER_DIGITS = 3


def _strip_view_box(svg_text: str) -> str:
    """Drop the root viewBox, only when width and height keep the drawing sized."""
    doc = minidom.parseString(svg_text.encode("utf-8"))
    root = doc.documentElement
    if root.hasAttribute("viewBox") and root.hasAttribute("width") and root.hasAttribute("height"):
        root.removeAttribute("viewBox")
    return doc.toxml()


class VectorOptimizer:
    def optimize(self, svg_text: str, precision: int = 2, remove_view_box: bool = False, cleanup_ids: bool = True) -> str:
        options = scour.generateDefaultOptions()
        options.digits = max(1, precision + _INTEGER_DIGITS)
        options.strip_ids = cleanup_ids
        options.shorten_ids = cleanup_ids
        options.strip_comments = True
        options.remove_metadata = True
        options.enable_viewboxing = False
        options.quiet = True
        try:
            if remove_view_box:
                svg_text = _strip_view_box(svg_text)
            return scour.scourString(svg_text, options)
        except (ExpatError, ValueError) as e:
            raise EncoderError(f"Invalid SVG: {e}") from e
