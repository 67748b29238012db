"""
Binary shader-set artifact writer and reader.

Layout (little-endian, strings are UTF-8 with a 7-bit variable-length
byte-count prefix):

    uint32 module_count
    uint32 program_count
    program_count x:
        string name
        byte   stage flags (vert=0x01 ... frag=0x10)
        uint32 module index, once per set flag, in stage order
    module_count x:
        string name
        string entry_point
        byte   stage
        uint32 bytecode_length
        bytes  bytecode

The layout has no magic number or version field; the runtime loader must be
kept in sync with this module.
"""

import struct
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import BinaryIO

from shaderset.errors import ArtifactFormatError
from shaderset.models import (
    ORDERED_STAGES,
    CompiledArtifact,
    ShaderSetDescription,
    ShaderStage,
)

_UINT32 = struct.Struct("<I")
_BYTE = struct.Struct("<B")

ALL_STAGE_FLAGS = 0x1F


def encode_string(value: str) -> bytes:
    """Encode a string with a 7-bit variable-length byte-count prefix."""
    data = value.encode("utf-8")
    length = len(data)
    prefix = bytearray()
    while length >= 0x80:
        prefix.append((length & 0x7F) | 0x80)
        length >>= 7
    prefix.append(length)
    return bytes(prefix) + data


def pack_shader_set(
    description: ShaderSetDescription, bytecodes: Sequence[bytes]
) -> bytes:
    """Serialize a description and its per-module bytecode.

    Args:
        description: Validated description
        bytecodes: Compiled bytecode, parallel to ``description.modules``

    Returns:
        The complete artifact
    """
    if len(bytecodes) != len(description.modules):
        raise ValueError(
            f"Expected bytecode for {len(description.modules)} modules, "
            f"got {len(bytecodes)}"
        )

    out = bytearray()
    out += _UINT32.pack(len(description.modules))
    out += _UINT32.pack(len(description.programs))

    for program in description.programs:
        out += encode_string(program.name)
        out += _BYTE.pack(int(program.flags))
        for _, module_name in program.stages():
            out += _UINT32.pack(description.module_index(module_name))

    for module, bytecode in zip(description.modules, bytecodes, strict=True):
        out += encode_string(module.name)
        out += encode_string(module.entry_point)
        out += _BYTE.pack(int(module.stage))
        out += _UINT32.pack(len(bytecode))
        out += bytecode

    return bytes(out)


def write_shader_set(
    stream: BinaryIO,
    description: ShaderSetDescription,
    artifacts: Sequence[CompiledArtifact],
) -> int:
    """Write the artifact for a description to a binary stream.

    All compiled artifacts are read before anything is written, so an I/O
    error while reading leaves the stream untouched.

    Args:
        stream: Destination stream
        description: Validated description
        artifacts: Compiled artifacts, parallel to ``description.modules``

    Returns:
        Number of bytes written
    """
    bytecodes = [artifact.read_bytes() for artifact in artifacts]
    data = pack_shader_set(description, bytecodes)
    stream.write(data)
    return len(data)


@dataclass
class ArchivedModule:
    """A module read back from an artifact."""

    name: str
    entry_point: str
    stage: ShaderStage
    bytecode: bytes


@dataclass
class ArchivedProgram:
    """A program read back from an artifact, with module indices per stage."""

    name: str
    stages: dict[ShaderStage, int] = field(default_factory=dict)


@dataclass
class ShaderSetArchive:
    """Contents of a binary shader-set artifact."""

    programs: list[ArchivedProgram] = field(default_factory=list)
    modules: list[ArchivedModule] = field(default_factory=list)


class _ArtifactReader:
    """Sequential reader over artifact bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def read(self, count: int) -> bytes:
        if self.pos + count > len(self.data):
            raise ArtifactFormatError(
                "Attempted to read past the end of the shader set artifact."
            )
        chunk = self.data[self.pos : self.pos + count]
        self.pos += count
        return chunk

    def uint32(self) -> int:
        return _UINT32.unpack(self.read(_UINT32.size))[0]

    def byte(self) -> int:
        return _BYTE.unpack(self.read(_BYTE.size))[0]

    def string(self) -> str:
        length = 0
        shift = 0
        while True:
            part = self.byte()
            length |= (part & 0x7F) << shift
            if not part & 0x80:
                break
            shift += 7
            if shift > 28:
                raise ArtifactFormatError("Invalid string length prefix.")
        try:
            return self.read(length).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ArtifactFormatError(f"Invalid string data: {e}") from e


def unpack_shader_set(data: bytes) -> ShaderSetArchive:
    """Parse artifact bytes.

    Raises:
        ArtifactFormatError: If the data is truncated or inconsistent
    """
    reader = _ArtifactReader(data)
    archive = ShaderSetArchive()
    module_count = reader.uint32()
    program_count = reader.uint32()

    for _ in range(program_count):
        program = ArchivedProgram(name=reader.string())
        flags = reader.byte()
        if flags & ~ALL_STAGE_FLAGS:
            raise ArtifactFormatError(
                f"Invalid stage flags 0x{flags:02x} for shader '{program.name}'."
            )
        for stage in ORDERED_STAGES:
            if flags & stage:
                index = reader.uint32()
                if index >= module_count:
                    raise ArtifactFormatError(
                        f"Shader '{program.name}' references module {index}, "
                        f"but only {module_count} modules exist."
                    )
                program.stages[stage] = index
        archive.programs.append(program)

    for _ in range(module_count):
        name = reader.string()
        entry_point = reader.string()
        stage_bits = reader.byte()
        if stage_bits not in {int(stage) for stage in ORDERED_STAGES}:
            raise ArtifactFormatError(
                f"Invalid stage 0x{stage_bits:02x} for module '{name}'."
            )
        length = reader.uint32()
        if length % 4 != 0:
            raise ArtifactFormatError(
                "SPIR-V bytecode must be a multiple of 4 in length."
            )
        archive.modules.append(
            ArchivedModule(
                name=name,
                entry_point=entry_point,
                stage=ShaderStage(stage_bits),
                bytecode=reader.read(length),
            )
        )

    return archive


def read_shader_set(stream: BinaryIO) -> ShaderSetArchive:
    """Read a binary shader-set artifact from a stream."""
    return unpack_shader_set(stream.read())
