"""Tests for the reflection and disassembly parser."""

import pytest

from shaderset.constants import HANDLE_BINDING_SIZE, ReservedTag, Sentinel
from shaderset.errors import ReflectionError
from shaderset.models import Uniform, UniformBinding
from shaderset.reflection import UniformBlock, parse_reflection, synthesize_bindings


class TestVertexAttributes:
    """Test cases for attribute parsing and location resolution."""

    def test_locations_come_from_disassembly(self, vertex_dumps):
        result = parse_reflection("BasicVert", *vertex_dumps())

        attributes = {a.name: a for a in result.attributes}
        assert attributes["pos"].location == 0
        assert attributes["pos"].type_tag == 0x8B51
        # The reflection dump claims location 5; the decoration says 1
        assert attributes["uv"].location == 1
        assert [a.name for a in result.attributes] == ["pos", "uv"]

    def test_single_attribute(self, reflection_dump):
        reflection = reflection_dump(attributes=["pos: layout(location=0) type 8b51"])
        disassembly = ['Name 7  "pos"', "Decorate 7(pos) Location 0"]

        result = parse_reflection("M", reflection, disassembly)

        assert result.attributes[0].location == 0

    def test_missing_location_fails(self, vertex_dumps):
        with pytest.raises(ReflectionError) as excinfo:
            parse_reflection("BasicVert", *vertex_dumps(with_pos_location=False))

        assert "'pos'" in str(excinfo.value)
        assert "BasicVert" in str(excinfo.value)

    def test_no_attributes(self, fragment_dumps):
        result = parse_reflection("BasicFrag", *fragment_dumps())
        assert result.attributes == ()


class TestUniforms:
    """Test cases for uniform and block reconstruction."""

    def test_block_uniforms_take_block_binding(self, vertex_dumps):
        result = parse_reflection("BasicVert", *vertex_dumps(globals_binding=2))

        uniforms = {u.name: u for u in result.uniforms}
        assert uniforms["mvp"] == Uniform(
            name="mvp",
            type_tag=0x8B5C,
            offset=0,
            binding=2,
            array_size=1,
            block="Globals",
        )
        assert uniforms["tint"].offset == 64
        assert not uniforms["tint"].is_handle

    def test_handle_uniform(self, fragment_dumps):
        result = parse_reflection("BasicFrag", *fragment_dumps(sampler_binding=3))

        tex = next(u for u in result.uniforms if u.name == "tex")
        assert tex.is_handle
        assert tex.offset == Sentinel.UNSET
        assert tex.binding == 3
        assert tex.block is None

    def test_qualified_member_name(self, reflection_dump):
        reflection = reflection_dump(
            uniforms=["Camera.view: offset 0, type 8b5c, size 1, index 0, binding -1"],
            blocks=["Camera: offset -1, type ffffffff, size 64, index -1, binding 4"],
        )
        disassembly = [
            'Name 10  "Camera"',
            'MemberName 10(Camera) 0  "view"',
            'Name 12  "camera"',
            "Decorate 10(Camera) Block",
            "Decorate 12(camera) DescriptorSet 0",
        ]

        result = parse_reflection("M", reflection, disassembly)

        assert result.uniforms[0].binding == 4
        assert result.uniforms[0].block == "Camera"

    def test_uniform_without_block_fails(self, reflection_dump):
        reflection = reflection_dump(
            uniforms=["orphan: offset 0, type 1406, size 1, index 0, binding -1"],
        )

        with pytest.raises(ReflectionError) as excinfo:
            parse_reflection("M", reflection, [])

        assert "'orphan'" in str(excinfo.value)

    def test_non_zero_descriptor_set_fails(self, vertex_dumps):
        with pytest.raises(ReflectionError) as excinfo:
            parse_reflection("BasicVert", *vertex_dumps(descriptor_set=1))

        assert "descriptor set 1" in str(excinfo.value)

    def test_missing_descriptor_set_fails(self, vertex_dumps):
        reflection, disassembly = vertex_dumps()
        disassembly = [line for line in disassembly if "DescriptorSet" not in line]

        with pytest.raises(ReflectionError) as excinfo:
            parse_reflection("BasicVert", reflection, disassembly)

        assert "not assigned a descriptor set" in str(excinfo.value)

    def test_block_without_spirv_name_fails(self, vertex_dumps):
        reflection, disassembly = vertex_dumps()
        disassembly = [line for line in disassembly if line != 'Name 17  "Globals"']

        with pytest.raises(ReflectionError) as excinfo:
            parse_reflection("BasicVert", reflection, disassembly)

        assert "SPIR-V id of block 'Globals'" in str(excinfo.value)

    def test_missing_section_fails(self, vertex_dumps):
        reflection, disassembly = vertex_dumps()
        reflection = [line for line in reflection if not line.startswith("Uniform block")]

        with pytest.raises(ReflectionError):
            parse_reflection("BasicVert", reflection, disassembly)

    def test_missing_field_fails(self, reflection_dump):
        reflection = reflection_dump(blocks=["Globals: offset -1, type ffffffff"])

        with pytest.raises(ReflectionError) as excinfo:
            parse_reflection("M", reflection, [])

        assert "'size'" in str(excinfo.value)


class TestBindings:
    """Test cases for binding table synthesis."""

    def test_block_and_sampler_sorted(self):
        """Test one block at binding 0 and one sampler at binding 1."""
        blocks = [UniformBlock(name="Globals", size=64, binding=0, members=["mvp"])]
        uniforms = [
            Uniform(name="tex", type_tag=0x8B5E, offset=-1, binding=1),
            Uniform(name="mvp", type_tag=0x8B5C, offset=0, binding=0, block="Globals"),
        ]

        bindings = synthesize_bindings(blocks, uniforms)

        assert bindings == [
            UniformBinding(name="Globals", type_tag=ReservedTag.BLOCK, binding=0, size=64),
            UniformBinding(name="tex", type_tag=0x8B5E, binding=1, size=HANDLE_BINDING_SIZE),
        ]

    def test_sorted_regardless_of_input_order(self):
        blocks = [UniformBlock(name="Late", size=16, binding=3)]
        uniforms = [
            Uniform(name="shadow", type_tag=0x8B62, offset=-1, binding=2),
            Uniform(name="albedo", type_tag=0x8B5E, offset=-1, binding=0),
        ]

        bindings = synthesize_bindings(blocks, uniforms)

        assert [b.binding for b in bindings] == [0, 2, 3]
        assert bindings[2].is_block

    def test_parsed_module_bindings(self, fragment_dumps):
        result = parse_reflection("BasicFrag", *fragment_dumps())

        assert [(b.name, b.binding, b.size) for b in result.bindings] == [
            ("Globals", 0, 80),
            ("tex", 1, HANDLE_BINDING_SIZE),
        ]

    def test_duplicate_binding_fails(self, fragment_dumps):
        with pytest.raises(ReflectionError) as excinfo:
            parse_reflection("BasicFrag", *fragment_dumps(sampler_binding=0))

        assert "binding 0" in str(excinfo.value)
