"""
Cross-stage validation of shader programs.

Every program gathers the bindings and uniforms of its stage modules in stage
order and checks that a binding index or uniform name claimed by more than one
stage is declared identically everywhere. Programs are validated
independently; a build fails if any program fails.
"""

from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

from shaderset.models import (
    ReflectionResult,
    ShaderProgramDecl,
    ShaderSetDescription,
    ShaderStage,
    Uniform,
    UniformBinding,
)

if TYPE_CHECKING:
    from loguru import Logger


@dataclass
class StageModule:
    """A program stage together with its module's reflection data."""

    stage: ShaderStage
    module_name: str
    reflection: ReflectionResult

    def describe(self) -> str:
        return f"{self.stage.label} module '{self.module_name}'"


@dataclass
class ProgramReport:
    """Validation outcome for one program.

    Attributes:
        program: Program name
        errors: Fatal mismatches (validation stops at the first one)
        missing_bindings: Binding indices absent from the 0-based range
    """

    program: str
    errors: list[str] = field(default_factory=list)
    missing_bindings: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def advisories(self) -> list[str]:
        if not self.missing_bindings:
            return []
        missing = ", ".join(str(index) for index in self.missing_bindings)
        return [
            f"The shader '{self.program}' has non-contiguous bindings, "
            f"missing binding indices: {missing}."
        ]


@dataclass
class ValidationResult:
    """Validation outcome for every program of a description."""

    reports: list[ProgramReport] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(report.ok for report in self.reports)

    @property
    def errors(self) -> list[str]:
        return [error for report in self.reports for error in report.errors]

    @property
    def advisories(self) -> list[str]:
        return [note for report in self.reports for note in report.advisories]


def _binding_signature(binding: UniformBinding) -> tuple[str, int, int]:
    return (binding.name, binding.size, binding.type_tag)


def _uniform_signature(uniform: Uniform) -> tuple[int, int, int, int]:
    return (uniform.binding, uniform.type_tag, uniform.offset, uniform.array_size)


def _first_conflict(
    program: str,
    stage_modules: Sequence[StageModule],
    items: Callable[[StageModule], Iterable[Any]],
    key: Callable[[Any], Hashable],
    signature: Callable[[Any], tuple[Any, ...]],
    what: Callable[[Any], str],
) -> str | None:
    """Walk the stages in order and report the first inconsistent redeclaration."""
    claimed: dict[Hashable, tuple[tuple[Any, ...], StageModule]] = {}
    for stage_module in stage_modules:
        for item in items(stage_module):
            previous = claimed.get(key(item))
            if previous is None:
                claimed[key(item)] = (signature(item), stage_module)
                continue
            previous_signature, previous_module = previous
            if previous_signature != signature(item):
                return (
                    f"The shader '{program}' has a mismatched {what(item)} between "
                    f"the {previous_module.describe()} and the "
                    f"{stage_module.describe()}."
                )
    return None


def check_bindings(program: str, stage_modules: Sequence[StageModule]) -> str | None:
    """Check that shared binding indices agree in name, size and type."""
    return _first_conflict(
        program,
        stage_modules,
        items=lambda sm: sm.reflection.bindings,
        key=lambda b: b.binding,
        signature=_binding_signature,
        what=lambda b: f"binding {b.binding} ('{b.name}')",
    )


def check_uniforms(program: str, stage_modules: Sequence[StageModule]) -> str | None:
    """Check that shared uniform names agree in binding, type, offset and size."""
    return _first_conflict(
        program,
        stage_modules,
        items=lambda sm: sm.reflection.uniforms,
        key=lambda u: u.name,
        signature=_uniform_signature,
        what=lambda u: f"uniform '{u.name}'",
    )


def find_binding_gaps(bindings: Iterable[int]) -> list[int]:
    """Binding indices missing from the range ``0..max(bindings)``."""
    claimed = set(bindings)
    if not claimed:
        return []
    return [index for index in range(max(claimed)) if index not in claimed]


def gather_stage_modules(
    program: ShaderProgramDecl,
    description: ShaderSetDescription,
    reflections: Sequence[ReflectionResult],
) -> list[StageModule]:
    """Collect the reflection data of a program's stage modules in stage order."""
    return [
        StageModule(
            stage=stage,
            module_name=module_name,
            reflection=reflections[description.module_index(module_name)],
        )
        for stage, module_name in program.stages()
    ]


def validate_program(
    program: ShaderProgramDecl,
    description: ShaderSetDescription,
    reflections: Sequence[ReflectionResult],
) -> ProgramReport:
    """Validate one program.

    Args:
        program: Program to validate
        description: Description that declares the program's modules
        reflections: Reflection results, parallel to ``description.modules``

    Returns:
        The program's report; errors abort the remaining checks
    """
    report = ProgramReport(program=program.name)
    stage_modules = gather_stage_modules(program, description, reflections)

    for check in (check_bindings, check_uniforms):
        error = check(program.name, stage_modules)
        if error is not None:
            report.errors.append(error)
            return report

    report.missing_bindings = find_binding_gaps(
        binding.binding
        for stage_module in stage_modules
        for binding in stage_module.reflection.bindings
    )
    return report


def validate_programs(
    description: ShaderSetDescription,
    reflections: Sequence[ReflectionResult],
    log: "Logger | None" = None,
) -> ValidationResult:
    """Validate every program of a description and log the outcome.

    Args:
        description: Parsed description
        reflections: Reflection results, parallel to ``description.modules``
        log: Logger to report errors and advisories to

    Returns:
        Reports for all programs, including those after a failing one
    """
    log = log or logger
    result = ValidationResult()
    for program in description.programs:
        report = validate_program(program, description, reflections)
        for error in report.errors:
            log.error(error)
        for advisory in report.advisories:
            log.warning(advisory)
        result.reports.append(report)
    return result
