"""
Data models for the shader-set pipeline.

This module contains the dataclass definitions shared by the parser, the
compiler driver, the reflection parser, the validator and the writer.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import IntFlag
from pathlib import Path

from shaderset.constants import HANDLE_BINDING_SIZE, ReservedTag, Sentinel


class ShaderStage(IntFlag):
    """Shader pipeline stages.

    Member values are the stage bits written to the binary artifact, and the
    declaration order is the fixed stage order used by validation and
    serialization.
    """

    VERTEX = 0x01
    TESS_CONTROL = 0x02
    TESS_EVAL = 0x04
    GEOMETRY = 0x08
    FRAGMENT = 0x10

    @property
    def token(self) -> str:
        """Stage token used by the description format and the compiler."""
        return _STAGE_TOKENS[self]

    @property
    def label(self) -> str:
        """Human readable stage name."""
        return _STAGE_LABELS[self]

    @classmethod
    def ordered(cls) -> tuple["ShaderStage", ...]:
        """All single stages in pipeline order."""
        return ORDERED_STAGES

    @classmethod
    def from_token(cls, token: str) -> "ShaderStage | None":
        """Look up a stage by its token (``vert``, ``frag``...)."""
        for stage in ORDERED_STAGES:
            if _STAGE_TOKENS[stage] == token:
                return stage
        return None


ORDERED_STAGES: tuple[ShaderStage, ...] = (
    ShaderStage.VERTEX,
    ShaderStage.TESS_CONTROL,
    ShaderStage.TESS_EVAL,
    ShaderStage.GEOMETRY,
    ShaderStage.FRAGMENT,
)

_STAGE_TOKENS: dict[ShaderStage, str] = {
    ShaderStage.VERTEX: "vert",
    ShaderStage.TESS_CONTROL: "tesc",
    ShaderStage.TESS_EVAL: "tese",
    ShaderStage.GEOMETRY: "geom",
    ShaderStage.FRAGMENT: "frag",
}

_STAGE_LABELS: dict[ShaderStage, str] = {
    ShaderStage.VERTEX: "vertex",
    ShaderStage.TESS_CONTROL: "tessellation control",
    ShaderStage.TESS_EVAL: "tessellation eval",
    ShaderStage.GEOMETRY: "geometry",
    ShaderStage.FRAGMENT: "fragment",
}


@dataclass(frozen=True)
class ModuleDecl:
    """One compiled shading unit declared in a description file.

    Attributes:
        name: Module name, unique within the description
        stage: Stage kind derived from the source file extension
        source_file: Source path relative to the description directory
        entry_point: Entry point function name
        macros: Preprocessor definitions, ``name`` or ``name=value``
    """

    name: str
    stage: ShaderStage
    source_file: str
    entry_point: str
    macros: tuple[str, ...] = ()


@dataclass
class ShaderProgramDecl:
    """A named program with one optional module slot per stage.

    Attributes:
        name: Program name, unique within the description
        vert: Vertex module name (required once parsing completes)
        tesc: Tessellation control module name
        tese: Tessellation evaluation module name
        geom: Geometry module name
        frag: Fragment module name
    """

    name: str
    vert: str | None = None
    tesc: str | None = None
    tese: str | None = None
    geom: str | None = None
    frag: str | None = None

    def get_stage(self, stage: ShaderStage) -> str | None:
        return getattr(self, stage.token)

    def set_stage(self, stage: ShaderStage, module_name: str) -> None:
        setattr(self, stage.token, module_name)

    def stages(self) -> Iterator[tuple[ShaderStage, str]]:
        """Yield ``(stage, module name)`` for every set slot in stage order."""
        for stage in ORDERED_STAGES:
            module_name = self.get_stage(stage)
            if module_name is not None:
                yield stage, module_name

    @property
    def flags(self) -> ShaderStage:
        """Bit set of the stages present in this program."""
        flags = ShaderStage(0)
        for stage, _ in self.stages():
            flags |= stage
        return flags


@dataclass
class ShaderSetDescription:
    """Parsed contents of a shader-set description file."""

    modules: list[ModuleDecl] = field(default_factory=list)
    programs: list[ShaderProgramDecl] = field(default_factory=list)

    def module_index(self, name: str) -> int:
        """Index of the named module in declaration order.

        Raises:
            KeyError: If no module has this name
        """
        for index, module in enumerate(self.modules):
            if module.name == name:
                return index
        raise KeyError(name)


@dataclass(frozen=True)
class VertexAttribute:
    """A vertex shader input.

    Attributes:
        name: Attribute name
        type_tag: Native compiler type code, never reinterpreted
        location: Input location resolved from the disassembly
    """

    name: str
    type_tag: int
    location: int


@dataclass(frozen=True)
class Uniform:
    """A uniform variable reported by reflection.

    Attributes:
        name: Uniform name as printed by the compiler
        type_tag: Native compiler type code
        offset: Offset in the containing block, ``Sentinel.UNSET`` for handles
        binding: Handle binding, or the binding of the containing block
        array_size: Array length (1 for non-arrays)
        block: Name of the containing block, if any
    """

    name: str
    type_tag: int
    offset: int
    binding: int
    array_size: int = 1
    block: str | None = None

    @property
    def is_handle(self) -> bool:
        return self.offset == Sentinel.UNSET


@dataclass(frozen=True)
class UniformBinding:
    """A descriptor binding: either a whole uniform block or a handle.

    Attributes:
        name: Block or handle uniform name
        type_tag: ``ReservedTag.BLOCK`` for blocks, the native type otherwise
        binding: Binding index in descriptor set 0
        size: Size in bytes
    """

    name: str
    type_tag: int
    binding: int
    size: int

    @property
    def is_block(self) -> bool:
        return self.type_tag == ReservedTag.BLOCK

    @classmethod
    def for_block(cls, name: str, binding: int, size: int) -> "UniformBinding":
        return cls(name=name, type_tag=int(ReservedTag.BLOCK), binding=binding, size=size)

    @classmethod
    def for_handle(cls, uniform: Uniform) -> "UniformBinding":
        return cls(
            name=uniform.name,
            type_tag=uniform.type_tag,
            binding=uniform.binding,
            size=HANDLE_BINDING_SIZE,
        )


@dataclass(frozen=True)
class ReflectionResult:
    """Reflection data for one compiled module."""

    attributes: tuple[VertexAttribute, ...] = ()
    uniforms: tuple[Uniform, ...] = ()
    bindings: tuple[UniformBinding, ...] = ()


@dataclass(frozen=True)
class CompiledArtifact:
    """Compiled bytecode for one module, stored in a scratch file."""

    module_name: str
    path: Path

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    @property
    def size(self) -> int:
        return self.path.stat().st_size
