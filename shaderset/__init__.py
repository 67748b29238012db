from shaderset.models import (
    ModuleDecl,
    ReflectionResult,
    ShaderProgramDecl,
    ShaderSetDescription,
    ShaderStage,
    Uniform,
    UniformBinding,
    VertexAttribute,
)
from shaderset.parser import parse_description, parse_description_file
from shaderset.pipeline import build_shader_set, process_shader_set
from shaderset.writer import read_shader_set, write_shader_set

__version__ = "0.1.0"


__all__ = [
    "ModuleDecl",
    "ReflectionResult",
    "ShaderProgramDecl",
    "ShaderSetDescription",
    "ShaderStage",
    "Uniform",
    "UniformBinding",
    "VertexAttribute",
    "build_shader_set",
    "parse_description",
    "parse_description_file",
    "process_shader_set",
    "read_shader_set",
    "write_shader_set",
]
