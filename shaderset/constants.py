"""
Constants shared by the shader-set pipeline.

This module contains the reserved type tags and sentinels printed by the
glslang reflection dump, the anchor strings used to split and scrape the
compiler output, and the fixed compiler argument list.
"""

from enum import IntEnum


class ReservedTag(IntEnum):
    """Type tags that are not native compiler type codes."""

    # Whole uniform block, as consumed by the runtime loader
    BLOCK = 0xFFFFFFFF


class Sentinel(IntEnum):
    """Sentinel values printed by the reflection dump."""

    # Offset of a handle uniform, or binding of a block-resident uniform
    UNSET = -1


# Descriptor size for opaque handle uniforms (samplers, images)
HANDLE_BINDING_SIZE = 4

# Only descriptor set supported by the runtime
REQUIRED_DESCRIPTOR_SET = 0

# Default executable name and environment overrides
GLSLANG_EXECUTABLE = "glslangValidator"
GLSLANG_PATH_ENV = "SHADERSET_GLSLANG"
GLSLANG_TIMEOUT_ENV = "SHADERSET_TIMEOUT"
DEFAULT_TIMEOUT = 30.0

# Full SPIR-V, link, reflection dump, disassembly dump
GLSLANG_BASE_ARGS: tuple[str, ...] = ("-V", "-l", "-q", "-H")

# Compiler output markers
ERROR_MARKER = "ERROR:"
REFLECTION_HEADER = "Uniform reflection:"
BLOCK_REFLECTION_HEADER = "Uniform block reflection:"
ATTRIBUTE_REFLECTION_HEADER = "Vertex attribute"
DISASSEMBLY_BOUND_HEADER = "// Id's are bound by "

# Metadata comments printed before the bound header
DISASSEMBLY_METADATA_LINES = 2
