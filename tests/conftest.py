"""Fixtures and configuration for pytest.

Compiler output here is synthetic: reflection and disassembly dumps are built
line by line, and ``fake_glslang`` stands in for ``subprocess.run``.
"""

import subprocess
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from loguru import logger

from shaderset.models import ModuleDecl, ShaderProgramDecl, ShaderSetDescription, ShaderStage

DISASSEMBLY_INDENT = " " * 30

# Bytecode written by the fake compiler, per stage token
BYTECODE = {
    "vert": b"\x03\x02\x23\x07" + bytes(12),
    "frag": b"\x03\x02\x23\x07" + bytes(range(8)),
}


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "glslang: mark test as requiring glslangValidator on PATH"
    )


def _reflection_dump(
    uniforms: list[str] | None = None,
    blocks: list[str] | None = None,
    attributes: list[str] | None = None,
) -> list[str]:
    """Build reflection dump lines in section order."""
    return [
        "Uniform reflection:",
        *(uniforms or []),
        "Uniform block reflection:",
        *(blocks or []),
        "Vertex attribute reflection:",
        *(attributes or []),
    ]


def _vertex_dumps(
    globals_size: int = 80,
    globals_binding: int = 0,
    tint_type: str = "8b52",
    descriptor_set: int = 0,
    with_pos_location: bool = True,
) -> tuple[list[str], list[str]]:
    """Reflection and disassembly of a vertex shader with a Globals block."""
    reflection = _reflection_dump(
        uniforms=[
            "mvp: offset 0, type 8b5c, size 1, index 0, binding -1",
            f"tint: offset 64, type {tint_type}, size 1, index 0, binding -1",
        ],
        blocks=[
            f"Globals: offset -1, type ffffffff, size {globals_size}, index -1, "
            f"binding {globals_binding}",
        ],
        attributes=[
            "pos: layout(location=0) type 8b51",
            "uv: layout(location=5) type 8b50",
        ],
    )
    disassembly = [
        "Capability Shader",
        '1:             ExtInstImport  "GLSL.std.450"',
        "MemoryModel Logical GLSL450",
        'EntryPoint Vertex 4  "main" 26 30',
        "Source GLSL 450",
        'Name 4  "main"',
        'Name 17  "Globals"',
        'MemberName 17(Globals) 0  "mvp"',
        'MemberName 17(Globals) 1  "tint"',
        'Name 19  ""',
        'Name 26  "pos"',
        'Name 30  "uv"',
        "MemberDecorate 17(Globals) 0 ColMajor",
        "MemberDecorate 17(Globals) 0 Offset 0",
        "MemberDecorate 17(Globals) 1 Offset 64",
        "Decorate 17(Globals) Block",
        f"Decorate 19 DescriptorSet {descriptor_set}",
        f"Decorate 19 Binding {globals_binding}",
        "Decorate 30(uv) Location 1",
        "2:             TypeVoid",
    ]
    if with_pos_location:
        disassembly.insert(-2, "Decorate 26(pos) Location 0")
    return reflection, disassembly


def _fragment_dumps(
    globals_size: int = 80, sampler_binding: int = 1
) -> tuple[list[str], list[str]]:
    """Reflection and disassembly of a fragment shader with a sampler."""
    reflection = _reflection_dump(
        uniforms=[
            "tint: offset 64, type 8b52, size 1, index 0, binding -1",
            f"tex: offset -1, type 8b5e, size 1, index -1, binding {sampler_binding}",
        ],
        blocks=[
            f"Globals: offset -1, type ffffffff, size {globals_size}, index -1, "
            "binding 0",
        ],
    )
    disassembly = [
        "Capability Shader",
        'EntryPoint Fragment 4  "main" 9',
        'Name 4  "main"',
        'Name 9  "color"',
        'Name 12  "Globals"',
        'MemberName 12(Globals) 0  "mvp"',
        'MemberName 12(Globals) 1  "tint"',
        'Name 14  ""',
        'Name 20  "tex"',
        "Decorate 9(color) Location 0",
        "Decorate 12(Globals) Block",
        "Decorate 14 DescriptorSet 0",
        "Decorate 14 Binding 0",
        "Decorate 20(tex) DescriptorSet 0",
        f"Decorate 20(tex) Binding {sampler_binding}",
    ]
    return reflection, disassembly


def _glslang_output(source_path: str, reflection: list[str], disassembly: list[str]) -> str:
    """Render dumps the way glslangValidator prints them to stdout."""
    lines = [
        source_path,
        *reflection,
        "",
        "// Module Version 10000",
        "// Generated by (magic number): 80007",
        "// Id's are bound by 40",
        "",
        *(DISASSEMBLY_INDENT + line for line in disassembly),
    ]
    return "\n".join(lines) + "\n"


def _completed(stdout: str) -> MagicMock:
    """A finished compiler process with the given combined output."""
    result = MagicMock(spec=subprocess.CompletedProcess)
    result.stdout = stdout
    return result


def _fake_glslang(
    outputs: dict[str, tuple[list[str], list[str]]],
    errors: dict[str, str] | None = None,
) -> Callable[..., MagicMock]:
    """Build a ``subprocess.run`` replacement that behaves like glslangValidator.

    Args:
        outputs: Reflection and disassembly dumps per stage token
        errors: Compiler error text per stage token
    """
    errors = errors or {}

    def run(command: list[str], **kwargs: object) -> MagicMock:
        stage = command[command.index("-S") + 1]
        source = command[-1]
        if stage in errors:
            return _completed(
                f"{source}\nERROR: {source}:{errors[stage]}\n"
                "ERROR: 1 compilation errors.  No code generated.\n"
            )
        Path(command[command.index("-o") + 1]).write_bytes(BYTECODE[stage])
        return _completed(_glslang_output(source, *outputs[stage]))

    return run


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(
        lambda message: messages.append(message.record["message"]), level="DEBUG"
    )
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def basic_description():
    """A two-module, one-program description."""
    return ShaderSetDescription(
        modules=[
            ModuleDecl(
                name="BasicVert",
                stage=ShaderStage.VERTEX,
                source_file="basic.vert",
                entry_point="main",
                macros=("USE_COLOR",),
            ),
            ModuleDecl(
                name="BasicFrag",
                stage=ShaderStage.FRAGMENT,
                source_file="basic.frag",
                entry_point="main",
            ),
        ],
        programs=[ShaderProgramDecl(name="Basic", vert="BasicVert", frag="BasicFrag")],
    )


@pytest.fixture
def reflection_dump():
    return _reflection_dump


@pytest.fixture
def vertex_dumps():
    """Factory for vertex shader dumps with a Globals block."""
    return _vertex_dumps


@pytest.fixture
def fragment_dumps():
    """Factory for fragment shader dumps with a Globals block and a sampler."""
    return _fragment_dumps


@pytest.fixture
def glslang_output():
    return _glslang_output


@pytest.fixture
def completed():
    return _completed


@pytest.fixture
def fake_glslang():
    """Factory for a ``subprocess.run`` replacement keyed by stage token."""
    return _fake_glslang


@pytest.fixture
def bytecode():
    """Bytecode the fake compiler writes, per stage token."""
    return BYTECODE
