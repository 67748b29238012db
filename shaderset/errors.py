"""
Exceptions raised by the shader-set pipeline.

Every failure mode of a build is a subclass of ShaderSetError. Library code
raises these; the pipeline and the command line interface catch them, log the
message and turn them into a failure result.
"""


class ShaderSetError(Exception):
    """Base class for all shader-set build errors.

    The class can carry the file and line number the error originated from,
    which are appended to the message in a user-friendly way.

    Examples:
        >>> raise ShaderSetError("Unknown module", file_path="a.pss", lineno=3)
        ShaderSetError: Unknown module in a.pss at line 3
    """

    def __init__(
        self, message: str, file_path: str | None = None, lineno: int | None = None
    ):
        """Initialize the exception with a message and optional location.

        Args:
            message: The error message
            file_path: Optional file the error refers to
            lineno: Optional 1-based line number in that file
        """
        self.message = message
        self.file_path = file_path
        self.lineno = lineno

        location_info = ""
        if file_path:
            location_info = f" in {file_path}"
        if lineno is not None:
            location_info += f" at line {lineno}"

        super().__init__(f"{message}{location_info}")


class DescriptionSyntaxError(ShaderSetError):
    """Malformed shader-set description file."""


class ShaderPathError(ShaderSetError):
    """A module source path is malformed or does not exist."""


class ToolNotFoundError(ShaderSetError):
    """The external compiler could not be located."""


class CompileError(ShaderSetError):
    """The external compiler reported errors for a module.

    Attributes:
        module_name: Name of the module that failed
        diagnostics: Error lines with source paths rewritten to relative form
    """

    def __init__(self, module_name: str, diagnostics: list[str]):
        self.module_name = module_name
        self.diagnostics = diagnostics
        super().__init__(f"Unable to compile shader module '{module_name}'")


class ToolOutputError(ShaderSetError):
    """The compiler output did not have the expected shape."""


class ReflectionError(ShaderSetError):
    """Reflection data for a module violates an invariant."""


class ArtifactFormatError(ShaderSetError):
    """A binary shader-set artifact could not be read."""
