"""
Shader-set build pipeline.

Runs the stages for one description strictly in order:

    parse -> (compile, reflect) per module -> validate programs -> write

Any failure aborts the remaining stages. Failures are logged through the
build context and reported as ``None``/``False``; no partial artifact is
ever left at the output path.
"""

from dataclasses import dataclass, field
from pathlib import Path

from shaderset.compiler import GlslangCompiler
from shaderset.context import BuildContext, TempFileAllocator
from shaderset.errors import CompileError, ShaderSetError
from shaderset.models import CompiledArtifact, ReflectionResult, ShaderSetDescription
from shaderset.parser import parse_description_file
from shaderset.reflection import parse_reflection
from shaderset.validator import ValidationResult, validate_programs
from shaderset.writer import write_shader_set


@dataclass
class ProcessedShaderSet:
    """Everything the writer needs for one description.

    Attributes:
        description: Parsed description
        artifacts: Compiled bytecode, parallel to ``description.modules``
        reflections: Reflection data, parallel to ``description.modules``
        validation: Program validation outcome
    """

    description: ShaderSetDescription
    artifacts: list[CompiledArtifact] = field(default_factory=list)
    reflections: list[ReflectionResult] = field(default_factory=list)
    validation: ValidationResult = field(default_factory=ValidationResult)


def compile_modules(
    description: ShaderSetDescription, ctx: BuildContext, compiler: GlslangCompiler
) -> tuple[list[CompiledArtifact], list[ReflectionResult]]:
    """Compile and reflect every module in declaration order.

    Raises:
        ShaderSetError: On the first module that fails
    """
    artifacts: list[CompiledArtifact] = []
    reflections: list[ReflectionResult] = []
    for module in description.modules:
        out_file = ctx.temp_file()
        ctx.logger.info(
            f"Compiling {module.stage.label} module '{module.name}' "
            f"({module.source_file})"
        )
        output = compiler.compile_module(
            module, ctx.file_directory, out_file, ctx.logger
        )
        reflection = parse_reflection(module.name, output.reflection, output.disassembly)
        ctx.logger.debug(
            f"Module '{module.name}': {len(reflection.attributes)} attributes, "
            f"{len(reflection.uniforms)} uniforms, "
            f"{len(reflection.bindings)} bindings"
        )
        artifacts.append(CompiledArtifact(module_name=module.name, path=Path(out_file)))
        reflections.append(reflection)
    return artifacts, reflections


def _log_failure(ctx: BuildContext, error: ShaderSetError) -> None:
    if isinstance(error, CompileError):
        ctx.logger.error("Unable to compile shader, reason(s):")
        for diagnostic in error.diagnostics:
            ctx.logger.error(f"     {diagnostic}")
    else:
        ctx.logger.error(str(error))


def process_shader_set(
    description: ShaderSetDescription,
    ctx: BuildContext,
    compiler: GlslangCompiler | None = None,
) -> ProcessedShaderSet | None:
    """Compile, reflect and validate a parsed description.

    Args:
        description: Parsed description
        ctx: Build context providing the logger and scratch files
        compiler: Compiler driver, created from the environment if omitted

    Returns:
        The processed shader set, or None if any stage failed
    """
    compiler = compiler or GlslangCompiler()
    try:
        artifacts, reflections = compile_modules(description, ctx, compiler)
    except ShaderSetError as e:
        _log_failure(ctx, e)
        return None

    validation = validate_programs(description, reflections, ctx.logger)
    if not validation.ok:
        failed = [report.program for report in validation.reports if not report.ok]
        ctx.logger.error(
            f"{len(failed)} shader(s) failed validation: {', '.join(failed)}"
        )
        return None

    return ProcessedShaderSet(
        description=description,
        artifacts=artifacts,
        reflections=reflections,
        validation=validation,
    )


def write_output(processed: ProcessedShaderSet, output: str | Path) -> int:
    """Write the artifact next to the destination, then move it into place.

    Returns:
        Number of bytes written
    """
    output = Path(output)
    partial = output.with_name(output.name + ".partial")
    try:
        with open(partial, "wb") as f:
            size = write_shader_set(f, processed.description, processed.artifacts)
        partial.replace(output)
    finally:
        partial.unlink(missing_ok=True)
    return size


def build_shader_set(
    description_path: str | Path,
    output_path: str | Path,
    compiler: GlslangCompiler | None = None,
    ctx: BuildContext | None = None,
) -> bool:
    """Build a binary shader-set artifact from a description file.

    Args:
        description_path: Path to the description file
        output_path: Destination of the binary artifact
        compiler: Compiler driver, created from the environment if omitted
        ctx: Build context; a private scratch directory is used if omitted

    Returns:
        True if the artifact was written, False otherwise
    """
    if ctx is None:
        with TempFileAllocator() as temp_file:
            return build_shader_set(
                description_path,
                output_path,
                compiler,
                BuildContext.for_file(description_path, temp_file),
            )

    try:
        description = parse_description_file(description_path, ctx.logger)
    except ShaderSetError as e:
        _log_failure(ctx, e)
        return False
    except OSError as e:
        ctx.logger.error(f"Unable to read shader set file: {e}")
        return False

    processed = process_shader_set(description, ctx, compiler)
    if processed is None:
        return False

    try:
        size = write_output(processed, output_path)
    except OSError as e:
        ctx.logger.error(f"Unable to write shader set artifact: {e}")
        return False

    ctx.logger.info(
        f"Wrote {len(description.modules)} modules and "
        f"{len(description.programs)} shaders ({size} bytes) to {output_path}"
    )
    return True
