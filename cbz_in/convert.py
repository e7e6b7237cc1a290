"""Image conversion through external tools.

Every tool is wrapped in a Converter, which takes the bytes of an image, writes them
to a temporary file, runs the tool and reads the result back. The Dispatcher picks
the converters needed to reach the target format and falls back to ImageMagick when
a dedicated tool chokes on an image.
"""

import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from rich.markup import escape

from . import tools
from .errors import ConversionFailedError, ToolNotFoundError
from .formats import DEFAULT_SOURCES, ImageFormat, Step, plan_conversion
from .log import log


class Converter(ABC):
    """Converts image bytes into output_format by running a single external tool."""

    tool = None
    output_format = None

    def __init__(self, timeout=None):
        self.timeout = timeout

    @abstractmethod
    def command(self, input_path, output_path):
        """Build the command line converting input_path into output_path."""

    def convert(self, data, source):
        with tempfile.TemporaryDirectory(prefix="cbz_in-") as tmp:
            input_path = Path(tmp) / f"input.{source.ext}"
            output_path = Path(tmp) / f"output.{self.output_format.ext}"
            input_path.write_bytes(data)

            tools.run_tool(self.command(str(input_path), str(output_path)), timeout=self.timeout)

            if not output_path.is_file() or output_path.stat().st_size == 0:
                raise ConversionFailedError(self.tool, "produced no output")
            return output_path.read_bytes()

    def __repr__(self):
        return f"{type(self).__name__}({self.tool})"


class CavifEncoder(Converter):
    tool = tools.ENCODER_TOOLS["avif"]
    output_format = ImageFormat.AVIF

    def command(self, input_path, output_path):
        return [self.tool, "--speed=3", "--threads=1", "--quality=88", input_path, "-o", output_path]


class CjxlEncoder(Converter):
    tool = tools.ENCODER_TOOLS["jxl"]
    output_format = ImageFormat.JXL

    def command(self, input_path, output_path):
        return [self.tool, "--effort=9", "--num_threads=1", "--distance=0", input_path, output_path]


class CwebpEncoder(Converter):
    tool = tools.ENCODER_TOOLS["webp"]
    output_format = ImageFormat.WEBP

    def command(self, input_path, output_path):
        return [self.tool, "-q", "90", input_path, "-o", output_path]


class AvifDecoder(Converter):
    tool = tools.DECODER_TOOLS["avif"]
    output_format = ImageFormat.PNG

    def command(self, input_path, output_path):
        return [self.tool, "--jobs", "1", input_path, output_path]


class JxlDecoder(Converter):
    tool = tools.DECODER_TOOLS["jxl"]
    output_format = ImageFormat.PNG

    def command(self, input_path, output_path):
        return [self.tool, input_path, output_path, "--num_threads=1"]


class JxlJpegDecoder(JxlDecoder):
    """Restores the original JPEG from a JXL that was losslessly recompressed from one."""

    output_format = ImageFormat.JPEG


class WebpDecoder(Converter):
    tool = tools.DECODER_TOOLS["webp"]
    output_format = ImageFormat.PNG

    def command(self, input_path, output_path):
        return [self.tool, input_path, "-o", output_path]


class MagickConverter(Converter):
    """ImageMagick handles every format, and is more forgiving with out-of-spec files."""

    tool = tools.MAGICK

    def __init__(self, output_format, timeout=None):
        super().__init__(timeout)
        self.output_format = output_format

    def command(self, input_path, output_path):
        return [self.tool, input_path, output_path]


ENCODERS = {
    ImageFormat.AVIF: CavifEncoder,
    ImageFormat.JXL: CjxlEncoder,
    ImageFormat.WEBP: CwebpEncoder,
}

DECODERS = {
    ImageFormat.AVIF: AvifDecoder,
    ImageFormat.JXL: JxlDecoder,
    ImageFormat.WEBP: WebpDecoder,
}


class Dispatcher:
    """Converts images of any recognized format to one target format."""

    def __init__(self, target, timeout=None):
        self.target = target
        self.timeout = timeout

    def provider_for(self, step):
        if step.source in DEFAULT_SOURCES:
            return ENCODERS[step.target](self.timeout)
        if step == Step(ImageFormat.JXL, ImageFormat.JPEG):
            return JxlJpegDecoder(self.timeout)
        return DECODERS[step.source](self.timeout)

    def required_tools(self, source):
        """Names of the tools needed to convert an image of format source."""
        needed = [self.provider_for(step).tool for step in plan_conversion(source, self.target)]
        if needed and source == ImageFormat.JXL:
            needed.insert(0, tools.JXLINFO)
        return needed

    def plan(self, data, source):
        """Steps for one image. JXL images are inspected to pick the route over JPEG or PNG."""
        if source != ImageFormat.JXL or self.target == ImageFormat.JXL:
            return plan_conversion(source, self.target)
        with tempfile.TemporaryDirectory(prefix="cbz_in-") as tmp:
            jxl_path = Path(tmp) / f"input.{source.ext}"
            jxl_path.write_bytes(data)
            recompressed = tools.has_jpeg_reconstruction(jxl_path, timeout=self.timeout)
        log(f"   jxl is {'a recompressed jpeg' if recompressed else 'encoded'}", level="debug")
        return plan_conversion(source, self.target, jpeg_reconstruction=recompressed)

    def check_tools(self, sources):
        """Raise ToolNotFoundError naming every tool missing for the given source formats."""
        needed = [tool for source in set(sources) for tool in self.required_tools(source)]
        missing = tools.missing_tools(needed)
        if missing:
            raise ToolNotFoundError(missing)

    def convert(self, data, source):
        for step in self.plan(data, source):
            data = self._run_step(step, data)
        return data

    def _run_step(self, step, data):
        provider = self.provider_for(step)
        try:
            return provider.convert(data, step.source)
        except ConversionFailedError as e:
            log(f"   [yellow]⚠️ {escape(str(e))}, retrying with {tools.MAGICK}[/yellow]", level="debug")
            first_error = e

        fallback = MagickConverter(step.target, self.timeout)
        try:
            return fallback.convert(data, step.source)
        except (ConversionFailedError, ToolNotFoundError) as e:
            raise ConversionFailedError(provider.tool, f"{first_error.reason}; fallback: {e}") from e
