"""Exceptions raised while converting archives."""


class CbzInError(Exception):
    """Base class for all errors reported by cbz_in."""


class ArchiveOpenError(CbzInError):
    def __init__(self, path, reason):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not open archive \"{path}\": {reason}")


class ArchiveWriteError(CbzInError):
    def __init__(self, path, reason):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not write archive \"{path}\": {reason}")


class ToolNotFoundError(CbzInError):
    def __init__(self, tools):
        if isinstance(tools, str):
            tools = [tools]
        self.tools = sorted(set(tools))
        super().__init__(f"Missing tools: {', '.join(self.tools)}")


class ConversionFailedError(CbzInError):
    def __init__(self, tool, reason):
        self.tool = tool
        self.reason = reason
        super().__init__(f"{tool} failed: {reason}")


class UnsupportedFormatError(CbzInError):
    def __init__(self, value, choices):
        self.value = value
        self.choices = list(choices)
        super().__init__(f"Unsupported format '{value}', choose from: {', '.join(self.choices)}")
