"""
Driver for the external glslang GLSL-to-SPIR-V compiler.

Each module is compiled by one synchronous glslangValidator process. The
combined stdout/stderr text carries compile errors, the reflection dump and
the SPIR-V disassembly; this module detects errors and splits the rest into
the reflection and disassembly segments consumed by the reflection parser.
"""

import os
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from shaderset.constants import (
    DEFAULT_TIMEOUT,
    DISASSEMBLY_BOUND_HEADER,
    DISASSEMBLY_METADATA_LINES,
    ERROR_MARKER,
    GLSLANG_BASE_ARGS,
    GLSLANG_EXECUTABLE,
    GLSLANG_PATH_ENV,
    GLSLANG_TIMEOUT_ENV,
    REFLECTION_HEADER,
)
from shaderset.errors import (
    CompileError,
    ShaderPathError,
    ToolNotFoundError,
    ToolOutputError,
)
from shaderset.models import ModuleDecl

if TYPE_CHECKING:
    from loguru import Logger

# Closing line of a failed compile, e.g. "2 compilation errors.  No code generated."
_SUMMARY_RE = re.compile(r"^\d+ compilation errors?\b")


@dataclass
class CompilerConfig:
    """Configuration for locating and running the compiler.

    Attributes:
        tool_path: Explicit compiler executable, or None to search for it
        timeout: Seconds to wait for one compiler process
    """

    tool_path: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(
        cls, tool_path: str | None = None, timeout: float | None = None
    ) -> "CompilerConfig":
        """Build a configuration, filling unset values from the environment.

        Args:
            tool_path: Explicit tool path, overrides SHADERSET_GLSLANG
            timeout: Explicit timeout, overrides SHADERSET_TIMEOUT

        Returns:
            The resulting configuration
        """
        if tool_path is None:
            tool_path = os.environ.get(GLSLANG_PATH_ENV) or None
        if timeout is None:
            env_timeout = os.environ.get(GLSLANG_TIMEOUT_ENV)
            try:
                timeout = float(env_timeout) if env_timeout else DEFAULT_TIMEOUT
            except ValueError:
                logger.warning(
                    f"Ignoring invalid {GLSLANG_TIMEOUT_ENV} value: {env_timeout}"
                )
                timeout = DEFAULT_TIMEOUT
        return cls(tool_path=tool_path, timeout=timeout)


@dataclass
class CompilerOutput:
    """The scraped text output of one successful compilation."""

    reflection: list[str] = field(default_factory=list)
    disassembly: list[str] = field(default_factory=list)


def locate_tool(config: CompilerConfig) -> str:
    """Find the compiler executable.

    Raises:
        ToolNotFoundError: If no executable can be found
    """
    if config.tool_path:
        found = shutil.which(config.tool_path)
        if found is None:
            raise ToolNotFoundError(
                f"The configured compiler '{config.tool_path}' is not executable."
            )
        return found
    found = shutil.which(GLSLANG_EXECUTABLE)
    if found is None:
        raise ToolNotFoundError(
            f"{GLSLANG_EXECUTABLE} not found. Install the Vulkan SDK or point "
            f"{GLSLANG_PATH_ENV} to its executable."
        )
    return found


def resolve_source(module: ModuleDecl, source_dir: str | Path) -> Path:
    """Resolve a module source path under the description directory.

    Raises:
        ShaderPathError: If the file does not exist
    """
    full_path = (Path(source_dir) / module.source_file).resolve()
    if not full_path.is_file():
        raise ShaderPathError(
            f"The shader file path '{module.source_file}' is not a valid path."
        )
    return full_path


def build_arguments(module: ModuleDecl, out_file: Path, source: Path) -> list[str]:
    """Build the compiler argument list for one module."""
    args = [*GLSLANG_BASE_ARGS, "-S", module.stage.token, "-o", str(out_file)]
    args.extend(f"-D{macro}" for macro in module.macros)
    args.append(str(source))
    return args


def split_output(text: str) -> list[str]:
    """Split compiler output into trimmed, non-empty lines."""
    return [line.strip() for line in text.splitlines() if line.strip()]


def parse_errors(lines: list[str], source_file: str, full_path: str) -> list[str]:
    """Extract compile errors, rewriting the absolute path to the relative one.

    Args:
        lines: Trimmed compiler output lines
        source_file: Source path as written in the description
        full_path: Absolute source path passed to the compiler

    Returns:
        Error messages without the marker; a trailing error-count summary is
        dropped
    """
    errors = [
        line[len(ERROR_MARKER) :].strip()
        for line in lines
        if line.startswith(ERROR_MARKER)
    ]
    if errors and _SUMMARY_RE.match(errors[-1]):
        errors.pop()
    return [
        source_file + error[len(full_path) :] if error.startswith(full_path) else error
        for error in errors
    ]


def split_dumps(lines: list[str], module_name: str) -> CompilerOutput:
    """Split output lines into the reflection and disassembly segments.

    Raises:
        ToolOutputError: If either anchor line cannot be found
    """
    reflect_start = next(
        (i for i, line in enumerate(lines) if line.startswith(REFLECTION_HEADER)),
        -1,
    )
    if reflect_start == -1:
        raise ToolOutputError(
            f"Unable to parse reflection dump for shader module '{module_name}'."
        )
    bound_line = next(
        (
            i
            for i, line in enumerate(lines)
            if line.startswith(DISASSEMBLY_BOUND_HEADER)
        ),
        -1,
    )
    if bound_line == -1:
        raise ToolOutputError(
            f"Unable to parse disassembly dump for shader module '{module_name}'."
        )
    reflect_end = bound_line - DISASSEMBLY_METADATA_LINES
    if reflect_end < reflect_start:
        raise ToolOutputError(
            f"The reflection dump for shader module '{module_name}' does not "
            "precede the disassembly dump."
        )
    return CompilerOutput(
        reflection=lines[reflect_start:reflect_end],
        disassembly=lines[bound_line + 1 :],
    )


class GlslangCompiler:
    """Runs glslangValidator for shader modules."""

    def __init__(self, config: CompilerConfig | None = None):
        self.config = config or CompilerConfig.from_env()
        self._tool_path: str | None = None

    @property
    def tool_path(self) -> str:
        if self._tool_path is None:
            self._tool_path = locate_tool(self.config)
        return self._tool_path

    def run(self, args: list[str]) -> str:
        """Run the compiler and return its combined output text.

        Bytes that are not valid UTF-8 are replaced rather than rejected.

        Raises:
            ToolOutputError: If the process times out or cannot be started
        """
        try:
            result = subprocess.run(
                [self.tool_path, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
                errors="replace",
                timeout=self.config.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolOutputError(
                f"{GLSLANG_EXECUTABLE} did not finish within "
                f"{self.config.timeout} seconds."
            ) from e
        except OSError as e:
            raise ToolOutputError(f"Unable to run {self.tool_path}: {e}") from e
        return result.stdout or ""

    def compile_module(
        self,
        module: ModuleDecl,
        source_dir: str | Path,
        out_file: str | Path,
        log: "Logger | None" = None,
    ) -> CompilerOutput:
        """Compile one module and scrape its reflection and disassembly dumps.

        Args:
            module: Module to compile
            source_dir: Directory of the description file
            out_file: Destination for the compiled SPIR-V
            log: Logger for build progress

        Returns:
            The reflection and disassembly line segments

        Raises:
            ShaderPathError: If the source file cannot be resolved
            CompileError: If the compiler reports errors
            ToolOutputError: If the output cannot be split
        """
        log = log or logger
        full_path = resolve_source(module, source_dir)
        args = build_arguments(module, Path(out_file), full_path)
        log.debug(f"Building with args: {' '.join(args)}")

        stdout = self.run(args)
        lines = split_output(stdout)

        if ERROR_MARKER in stdout:
            raise CompileError(
                module.name, parse_errors(lines, module.source_file, str(full_path))
            )

        return split_dumps(lines, module.name)
