"""
Reflection parser for glslang text output.

glslang has no structured reflection format, so the vertex attributes,
uniforms and uniform blocks of a module are reconstructed from two text dumps:

* the reflection dump (``-q``), which lists uniforms, uniform blocks and
  vertex attributes as ``name: key value, key value, ...`` lines, and
* the SPIR-V disassembly (``-H``), which is authoritative for attribute
  locations, block descriptor sets and block member names.

Everything here depends on fixed anchor substrings. A change of the compiler's
report format surfaces as a ReflectionError for the module.
"""

import re
from dataclasses import dataclass, field

from loguru import logger

from shaderset.constants import (
    ATTRIBUTE_REFLECTION_HEADER,
    BLOCK_REFLECTION_HEADER,
    REFLECTION_HEADER,
    REQUIRED_DESCRIPTOR_SET,
    Sentinel,
)
from shaderset.errors import ReflectionError
from shaderset.models import ReflectionResult, Uniform, UniformBinding, VertexAttribute

_TYPE_FIELD_RE = re.compile(r"\btype\s+(?:0x)?([0-9a-fA-F]+)\b")
_INT_FIELD_RES = {
    key: re.compile(rf"\b{key}\s+(-?\d+)\b") for key in ("offset", "size", "binding")
}

_NAME_RE = re.compile(r'^Name\s+(\d+)\s+"(.*)"$')
_MEMBER_NAME_RE = re.compile(r'^MemberName\s+(\d+)\(.*?\)\s+\d+\s+"(.*)"$')
_BLOCK_DECORATION_RE = re.compile(r"^Decorate\s+(\d+)\(.*?\)\s+Block$")
_DESCRIPTOR_SET_RE = re.compile(r"^Decorate\s+\d+(?:\(.*?\))?\s+DescriptorSet\s+(\d+)$")
_LOCATION_RE = re.compile(r"^Decorate\s+\d+\((.+?)\)\s+Location\s+(\d+)$")
_ARRAY_SUFFIX_RE = re.compile(r"\[\d*\]$")


@dataclass
class UniformBlock:
    """A uniform block reconstructed from both dumps.

    Attributes:
        name: Block type name
        size: Block size in bytes
        binding: Binding index in descriptor set 0
        members: Member names from the disassembly
    """

    name: str
    size: int
    binding: int
    members: list[str] = field(default_factory=list)

    def contains(self, uniform_name: str) -> bool:
        """Check whether a reflected uniform name is a member of this block."""
        head, _, tail = uniform_name.partition(".")
        if head == self.name and tail:
            uniform_name = tail
        member = _ARRAY_SUFFIX_RE.sub("", uniform_name.split(".")[0])
        return member in self.members


class ReflectionParser:
    """Parses the reflection and disassembly dumps of one module."""

    def __init__(self, module_name: str, reflection: list[str], disassembly: list[str]):
        self.module_name = module_name
        self.reflection = reflection
        self.disassembly = disassembly

    def _error(self, message: str) -> ReflectionError:
        return ReflectionError(f"Shader module '{self.module_name}': {message}")

    def _find_header(self, prefix: str) -> int:
        for index, line in enumerate(self.reflection):
            if line.startswith(prefix):
                return index
        raise self._error(f"unable to find the '{prefix}' reflection section")

    def _split_sections(self) -> tuple[list[str], list[str], list[str]]:
        """Split the reflection dump into uniform, block and attribute lines."""
        uniform_start = self._find_header(REFLECTION_HEADER)
        block_start = self._find_header(BLOCK_REFLECTION_HEADER)
        attribute_start = self._find_header(ATTRIBUTE_REFLECTION_HEADER)
        if not uniform_start < block_start < attribute_start:
            raise self._error("the reflection sections are out of order")
        return (
            self.reflection[uniform_start + 1 : block_start],
            self.reflection[block_start + 1 : attribute_start],
            self.reflection[attribute_start + 1 :],
        )

    def _split_entry(self, line: str) -> tuple[str, str]:
        name, sep, fields = line.partition(":")
        name = name.strip()
        if not sep or not name:
            raise self._error(f"unable to parse reflection line '{line}'")
        return name, fields

    def _int_field(self, key: str, fields: str, line: str) -> int:
        match = _INT_FIELD_RES[key].search(fields)
        if match is None:
            raise self._error(f"missing '{key}' in reflection line '{line}'")
        return int(match.group(1))

    def _type_field(self, fields: str, line: str) -> int:
        match = _TYPE_FIELD_RE.search(fields)
        if match is None:
            raise self._error(f"missing 'type' in reflection line '{line}'")
        return int(match.group(1), 16)

    def _block_id(self, block_name: str) -> str:
        for line in self.disassembly:
            match = _NAME_RE.match(line)
            if match and match.group(2) == block_name:
                return match.group(1)
        raise self._error(f"unable to find the SPIR-V id of block '{block_name}'")

    def _check_descriptor_set(self, block_id: str, block_name: str) -> None:
        for index, line in enumerate(self.disassembly):
            match = _BLOCK_DECORATION_RE.match(line)
            if not match or match.group(1) != block_id:
                continue
            following = (
                self.disassembly[index + 1]
                if index + 1 < len(self.disassembly)
                else ""
            )
            set_match = _DESCRIPTOR_SET_RE.match(following)
            if set_match is None:
                raise self._error(
                    f"the block '{block_name}' is not assigned a descriptor set"
                )
            descriptor_set = int(set_match.group(1))
            if descriptor_set != REQUIRED_DESCRIPTOR_SET:
                raise self._error(
                    f"the block '{block_name}' is bound to descriptor set "
                    f"{descriptor_set}, only set {REQUIRED_DESCRIPTOR_SET} is "
                    "supported"
                )
            return
        raise self._error(f"unable to find the block decoration of '{block_name}'")

    def _member_names(self, block_id: str) -> list[str]:
        members = []
        for line in self.disassembly:
            match = _MEMBER_NAME_RE.match(line)
            if match and match.group(1) == block_id:
                members.append(match.group(2))
        return members

    def parse_blocks(self, lines: list[str]) -> list[UniformBlock]:
        blocks = []
        for line in lines:
            name, fields = self._split_entry(line)
            block = UniformBlock(
                name=name,
                size=self._int_field("size", fields, line),
                binding=self._int_field("binding", fields, line),
            )
            block_id = self._block_id(name)
            self._check_descriptor_set(block_id, name)
            block.members = self._member_names(block_id)
            logger.debug(
                f"Reflected block {name}: binding {block.binding}, "
                f"size {block.size}, members {block.members}"
            )
            blocks.append(block)
        return blocks

    def parse_uniforms(
        self, lines: list[str], blocks: list[UniformBlock]
    ) -> list[Uniform]:
        uniforms = []
        for line in lines:
            name, fields = self._split_entry(line)
            binding = self._int_field("binding", fields, line)
            block_name = None
            if binding == Sentinel.UNSET:
                block = next((b for b in blocks if b.contains(name)), None)
                if block is None:
                    raise self._error(
                        f"unable to find the containing block of uniform '{name}'"
                    )
                binding = block.binding
                block_name = block.name
            uniforms.append(
                Uniform(
                    name=name,
                    type_tag=self._type_field(fields, line),
                    offset=self._int_field("offset", fields, line),
                    binding=binding,
                    array_size=max(self._int_field("size", fields, line), 1),
                    block=block_name,
                )
            )
        return uniforms

    def parse_attributes(self, lines: list[str]) -> list[VertexAttribute]:
        """Parse attribute lines and resolve their locations from the disassembly.

        The location printed in the reflection dump is not reliable and is
        ignored; the ``Decorate <id>(<name>) Location <N>`` lines are used
        instead.
        """
        declared: list[tuple[str, int]] = []
        for line in lines:
            name, fields = self._split_entry(line)
            declared.append((name, self._type_field(fields, line)))

        locations: dict[str, int] = {}
        for line in self.disassembly:
            match = _LOCATION_RE.match(line)
            if match:
                locations.setdefault(match.group(1), int(match.group(2)))

        attributes = []
        for name, type_tag in declared:
            if name not in locations:
                raise self._error(
                    f"unable to resolve the location of vertex attribute '{name}'"
                )
            attributes.append(
                VertexAttribute(name=name, type_tag=type_tag, location=locations[name])
            )
        return attributes

    def parse(self) -> ReflectionResult:
        uniform_lines, block_lines, attribute_lines = self._split_sections()
        blocks = self.parse_blocks(block_lines)
        uniforms = self.parse_uniforms(uniform_lines, blocks)
        attributes = self.parse_attributes(attribute_lines)
        bindings = synthesize_bindings(blocks, uniforms)

        seen: set[int] = set()
        for binding in bindings:
            if binding.binding in seen:
                raise self._error(
                    f"binding {binding.binding} is used by more than one uniform"
                )
            seen.add(binding.binding)

        return ReflectionResult(
            attributes=tuple(attributes),
            uniforms=tuple(uniforms),
            bindings=tuple(bindings),
        )


def synthesize_bindings(
    blocks: list[UniformBlock], uniforms: list[Uniform]
) -> list[UniformBinding]:
    """Build the binding table: one entry per block and per handle uniform.

    Returns:
        Bindings sorted ascending by binding index
    """
    bindings = [
        UniformBinding.for_block(block.name, block.binding, block.size)
        for block in blocks
    ]
    bindings.extend(UniformBinding.for_handle(u) for u in uniforms if u.is_handle)
    return sorted(bindings, key=lambda b: b.binding)


def parse_reflection(
    module_name: str, reflection: list[str], disassembly: list[str]
) -> ReflectionResult:
    """Parse one module's compiler dumps into typed reflection data.

    Args:
        module_name: Module name used in error messages
        reflection: Reflection dump lines
        disassembly: Disassembly dump lines

    Returns:
        The module's attributes, uniforms and bindings

    Raises:
        ReflectionError: If the dumps are malformed or violate an invariant
    """
    return ReflectionParser(module_name, reflection, disassembly).parse()
