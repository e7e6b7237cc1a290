from enum import Enum
from pathlib import PurePosixPath

from .errors import UnsupportedFormatError


class ImageFormat(Enum):
    JPEG = "jpeg"
    PNG = "png"
    AVIF = "avif"
    JXL = "jxl"
    WEBP = "webp"

    @property
    def ext(self):
        return self.value

    @classmethod
    def from_name(cls, name):
        """Guess the image format of an archive entry from its file extension."""
        suffix = PurePosixPath(name).suffix.lower()
        return EXTENSIONS.get(suffix)

    @classmethod
    def parse(cls, value):
        try:
            return cls(value.lower())
        except ValueError:
            raise UnsupportedFormatError(value, [f.value for f in cls]) from None


EXTENSIONS = {
    ".jpg": ImageFormat.JPEG,
    ".jpeg": ImageFormat.JPEG,
    ".png": ImageFormat.PNG,
    ".avif": ImageFormat.AVIF,
    ".jxl": ImageFormat.JXL,
    ".webp": ImageFormat.WEBP,
}

# Always converted, even without --force
DEFAULT_SOURCES = (ImageFormat.JPEG, ImageFormat.PNG)
TARGETS = (ImageFormat.AVIF, ImageFormat.JXL, ImageFormat.WEBP)


def parse_target(value):
    """Parse a target format given on the command line."""
    for fmt in TARGETS:
        if fmt.value == value.lower():
            return fmt
    raise UnsupportedFormatError(value, [t.value for t in TARGETS])


def should_convert(name, target, force=False):
    """Decide whether an archive entry is an image that should be converted to target.

    Without force only JPEG and PNG qualify. With force every recognized image format
    does. Directories, unknown extensions and images already in the target format
    are passed through.
    """
    if name.endswith("/"):
        return False
    fmt = ImageFormat.from_name(name)
    if fmt is None or fmt == target:
        return False
    return force or fmt in DEFAULT_SOURCES


class Step:
    """One external tool call taking an image from one format to another."""

    def __init__(self, source, target):
        self.source = source
        self.target = target

    def __eq__(self, other):
        return isinstance(other, Step) and (self.source, self.target) == (other.source, other.target)

    def __repr__(self):
        return f"Step({self.source.ext} -> {self.target.ext})"


def plan_conversion(source, target, jpeg_reconstruction=False):
    """Return the steps needed to turn an image of format source into target.

    JPEG and PNG are fed to the target's encoder directly. The other formats are
    decoded to PNG first, since the encoders only read JPEG and PNG. A JXL holding
    JPEG reconstruction data is decoded back to the original JPEG instead.
    """
    if source == target:
        return []
    if source in DEFAULT_SOURCES:
        return [Step(source, target)]
    if source == ImageFormat.JXL and jpeg_reconstruction:
        return [Step(source, ImageFormat.JPEG), Step(ImageFormat.JPEG, target)]
    return [Step(source, ImageFormat.PNG), Step(ImageFormat.PNG, target)]
