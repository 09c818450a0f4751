"""terarelay - cached share resolution and HLS relay for TeraBox short links."""

__version__ = "0.1.0"
