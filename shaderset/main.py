"""Command line interface for shaderset.

This module provides commands to build shader-set description files into
binary artifacts, check descriptions without compiling, inspect built
artifacts, and rebuild automatically when sources change.
"""

import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar, cast

import arrow
import typer
import watchdog.events
import watchdog.observers
from loguru import logger
from watchdog.events import FileSystemEventHandler

from shaderset.compiler import CompilerConfig, GlslangCompiler
from shaderset.errors import ShaderSetError
from shaderset.models import ORDERED_STAGES
from shaderset.parser import parse_description_file
from shaderset.pipeline import build_shader_set
from shaderset.writer import read_shader_set

# Define type variables for TypedCallable
F = TypeVar("F", bound=Callable[..., Any])


def typed_command(app_command: Any) -> Callable[[F], F]:
    """Wrap typer command with proper typing for mypy."""

    def decorator(func: F) -> F:
        return cast(F, app_command(func))

    return decorator


app = typer.Typer(
    name="shaderset",
    help=(
        "Compile shader-set description files into binary shader sets. "
        "Commands: build, check, inspect, watch."
    ),
    add_completion=False,
)

# Source extensions that trigger a rebuild in watch mode
WATCHED_SUFFIXES = {".vert", ".tesc", ".tese", ".geom", ".frag", ".glsl"}

DESCRIPTION_ARG = typer.Argument(..., help="Shader set description file")
OUTPUT_ARG = typer.Argument(..., help="Output shader set artifact")
GLSLANG_OPTION = typer.Option(
    None, "--glslang", "-g", help="Path to glslangValidator (default: search PATH)"
)
TIMEOUT_OPTION = typer.Option(
    None, "--timeout", help="Seconds to wait for each compiler process"
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Configure logging for all commands."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def _make_compiler(glslang: str | None, timeout: float | None) -> GlslangCompiler:
    return GlslangCompiler(CompilerConfig.from_env(tool_path=glslang, timeout=timeout))


@typed_command(app.command("build"))
def build(
    description: Path = DESCRIPTION_ARG,
    output: Path = OUTPUT_ARG,
    glslang: str | None = GLSLANG_OPTION,
    timeout: float | None = TIMEOUT_OPTION,
) -> None:
    """Compile, validate and write a shader set.

    Example: shaderset build shaders/basic.pss basic.bin
    """
    started = arrow.utcnow()
    logger.info(
        f"Building {description} at {started.format('YYYY-MM-DD HH:mm:ss UTC')}"
    )
    if not build_shader_set(description, output, _make_compiler(glslang, timeout)):
        logger.error(f"Failed to build {description}")
        raise typer.Exit(1)
    elapsed = (arrow.utcnow() - started).total_seconds()
    logger.info(f"Built {output} in {elapsed:.2f}s")


@typed_command(app.command("check"))
def check(description: Path = DESCRIPTION_ARG) -> None:
    """Parse a description file and list its modules and shaders.

    No compiler is invoked; only the description syntax is checked.
    """
    try:
        parsed = parse_description_file(description)
    except ShaderSetError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e
    except OSError as e:
        logger.error(f"Unable to read shader set file: {e}")
        raise typer.Exit(1) from e

    for module in parsed.modules:
        macros = " ".join(f"-D{macro}" for macro in module.macros)
        typer.echo(
            f"module {module.name}: {module.stage.token} {module.source_file} "
            f"@{module.entry_point} {macros}".rstrip()
        )
    for program in parsed.programs:
        stages = ", ".join(f"{stage.token}={name}" for stage, name in program.stages())
        typer.echo(f"shader {program.name}: {stages}")


@typed_command(app.command("inspect"))
def inspect_artifact(
    artifact: Path = typer.Argument(..., help="Built shader set artifact"),
) -> None:
    """Print the program and module tables of a built shader set."""
    try:
        with open(artifact, "rb") as f:
            archive = read_shader_set(f)
    except ShaderSetError as e:
        logger.error(f"Invalid shader set artifact: {e}")
        raise typer.Exit(1) from e
    except OSError as e:
        logger.error(f"Unable to read shader set artifact: {e}")
        raise typer.Exit(1) from e

    typer.echo(f"{len(archive.modules)} modules, {len(archive.programs)} shaders")
    for program in archive.programs:
        stages = ", ".join(
            f"{stage.token}={archive.modules[program.stages[stage]].name}"
            for stage in ORDERED_STAGES
            if stage in program.stages
        )
        typer.echo(f"shader {program.name}: {stages}")
    for index, module in enumerate(archive.modules):
        typer.echo(
            f"module {index} {module.name}: {module.stage.token} "
            f"@{module.entry_point} ({len(module.bytecode)} bytes)"
        )


class ShaderSetChangeHandler(FileSystemEventHandler):  # type: ignore
    """Event handler for description and shader source changes."""

    def __init__(self, description: Path):
        """Initialize the handler.

        Args:
            description: Path of the description file being watched
        """
        self.description = description.resolve()
        self.needs_rebuild = False

    def on_modified(self, event: watchdog.events.FileSystemEvent) -> None:
        """Flag a rebuild when the description or a shader source changes."""
        if event.is_directory:
            return
        path = Path(str(event.src_path)).resolve()
        if path == self.description or path.suffix in WATCHED_SUFFIXES:
            logger.info(f"Detected changes in {path.name}")
            self.needs_rebuild = True

    on_created = on_modified


@typed_command(app.command("watch"))
def watch(
    description: Path = DESCRIPTION_ARG,
    output: Path = OUTPUT_ARG,
    glslang: str | None = GLSLANG_OPTION,
    timeout: float | None = TIMEOUT_OPTION,
) -> None:
    """Rebuild the shader set whenever its description or sources change.

    Example: shaderset watch shaders/basic.pss basic.bin
    """
    compiler = _make_compiler(glslang, timeout)
    handler = ShaderSetChangeHandler(description)
    observer = watchdog.observers.Observer()
    observer.schedule(handler, str(handler.description.parent), recursive=True)
    observer.start()

    logger.info(f"Watching {description} (press Ctrl+C to exit)...")
    build_shader_set(description, output, compiler)
    try:
        while True:
            time.sleep(0.25)
            if handler.needs_rebuild:
                handler.needs_rebuild = False
                if build_shader_set(description, output, compiler):
                    logger.info(f"Rebuilt {output}")
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, stopping...")
    finally:
        observer.stop()
        observer.join()


if __name__ == "__main__":
    app()
