"""Phone notification mockups, exported as PNG or scrolling GIF."""

__version__ = "0.1.0"
