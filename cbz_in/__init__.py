"""Convert images within comic book archives to newer image formats."""

__version__ = "0.3.0"
