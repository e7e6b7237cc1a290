"""Thin wrappers around the external image tools."""

import shutil
import subprocess

from .errors import ConversionFailedError, ToolNotFoundError

MAGICK = "magick"
ENCODER_TOOLS = {"avif": "cavif", "jxl": "cjxl", "webp": "cwebp"}
DECODER_TOOLS = {"avif": "avifdec", "jxl": "djxl", "webp": "dwebp"}
JXLINFO = "jxlinfo"

# jxlinfo lists this box for JXL files that were losslessly recompressed from a JPEG
JPEG_RECONSTRUCTION_BOX = 'box: type: "jbrd"'

# Only the tail of stderr ends up in error messages
STDERR_TAIL = 500


def is_available(tool):
    return shutil.which(tool) is not None


def missing_tools(tools):
    """Return the sorted names of all tools not found on PATH."""
    return sorted(tool for tool in set(tools) if not is_available(tool))


def tool_version(tool):
    """Get the first line of a tool's version output, for logging."""
    try:
        result = subprocess.run([tool, "--version"], capture_output=True, text=True,
                                encoding='utf-8', errors='replace', timeout=30)
        # Some tools print their version on stderr
        output = result.stdout.strip() or result.stderr.strip()
        return output.splitlines()[0] if output else "unknown"
    except (OSError, subprocess.TimeoutExpired):
        return "unknown"


def run_tool(cmd_list, timeout=None):
    """Run an external tool to completion.

    Raises ToolNotFoundError if the executable is not on PATH and
    ConversionFailedError if it exits non-zero or runs into the timeout.
    """
    tool = cmd_list[0]
    if not is_available(tool):
        raise ToolNotFoundError(tool)
    try:
        result = subprocess.run(cmd_list, check=False, capture_output=True, text=True,
                                encoding='utf-8', errors='replace', timeout=timeout)
    except FileNotFoundError:
        raise ToolNotFoundError(tool) from None
    except subprocess.TimeoutExpired:
        raise ConversionFailedError(tool, f"timed out after {timeout}s") from None

    if result.returncode != 0:
        stderr = result.stderr.strip()[-STDERR_TAIL:]
        reason = f"exit code {result.returncode}"
        if stderr:
            reason = f"{reason}: {stderr}"
        raise ConversionFailedError(tool, reason)
    return result


def has_jpeg_reconstruction(jxl_path, timeout=None):
    """Ask jxlinfo whether a JXL file can be decoded back into its original JPEG."""
    result = run_tool([JXLINFO, str(jxl_path)], timeout=timeout)
    return any(line.startswith(JPEG_RECONSTRUCTION_BOX) for line in result.stdout.splitlines())
