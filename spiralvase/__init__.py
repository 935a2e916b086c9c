"""SpiralVase: continuous-Z spiral vase post-processing for G-code."""

__version__ = "1.0.0"
