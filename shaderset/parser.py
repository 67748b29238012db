"""
Parser for shader-set description files.

A description file declares a ``modules`` block followed by zero or more
``shader`` blocks:

    modules {
        [BasicVert] = "basic.vert" @main !USE_COLOR !SCALE=2.0
        [BasicFrag] = "basic.frag" @main
    }
    shader [Basic] {
        vert = [BasicVert]
        frag = [BasicFrag]
    }

Parsing is all-or-nothing: the first structural error raises a
DescriptionSyntaxError carrying the original line number.
"""

import re
from collections.abc import Iterable
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import TYPE_CHECKING

from loguru import logger

from shaderset.errors import DescriptionSyntaxError
from shaderset.models import (
    ModuleDecl,
    ShaderProgramDecl,
    ShaderSetDescription,
    ShaderStage,
)

if TYPE_CHECKING:
    from loguru import Logger

# A stripped line and its original 1-based line number
SourceLine = tuple[str, int]

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_NUMERIC_RE = re.compile(
    r"^[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)$"
)
_UNSAFE_PATH_RE = re.compile(r"[\s\\<>\"|?*%{}^`:]")
_SHADER_HEADER_RE = re.compile(r"^shader\s*\[(?P<name>.*)\](?P<rest>.*)$")


def strip_lines(lines: Iterable[str]) -> list[SourceLine]:
    """Remove comments, surrounding whitespace and empty lines.

    Args:
        lines: Raw lines of the description file

    Returns:
        Remaining non-empty lines paired with their original line numbers
    """
    stripped: list[SourceLine] = []
    for lineno, line in enumerate(lines, start=1):
        comment = line.find("//")
        if comment != -1:
            line = line[:comment]
        line = line.strip()
        if line:
            stripped.append((line, lineno))
    return stripped


def is_relative_path(path: str) -> bool:
    """Check that a path is a well-formed relative path."""
    if not path or _UNSAFE_PATH_RE.search(path):
        return False
    if PurePosixPath(path).is_absolute() or PureWindowsPath(path).anchor:
        return False
    return all(part for part in path.split("/"))


def _fail(message: str, lineno: int | None = None) -> DescriptionSyntaxError:
    return DescriptionSyntaxError(message, lineno=lineno)


def _find_block_end(lines: list[SourceLine], start: int) -> int:
    for index in range(start, len(lines)):
        if lines[index][0] == "}":
            return index
    return -1


def parse_macro(token: str, lineno: int) -> str:
    """Validate one ``!macro`` token and return the macro without the ``!``."""
    if not token.startswith("!"):
        raise _fail("'!' expected for macro definition", lineno)
    macro = token[1:]
    name, sep, value = macro.partition("=")
    if not _IDENTIFIER_RE.match(name):
        raise _fail(f"the macro '{macro}' does not have a valid name", lineno)
    if sep and not _NUMERIC_RE.match(value):
        raise _fail(
            f"the value macro '{macro}' is not a valid numerical value", lineno
        )
    return macro


def parse_module(line: str, lineno: int) -> ModuleDecl:
    """Parse a module declaration line.

    Args:
        line: Stripped line of the form ``[Name] = "path.ext" @Entry [!macro]*``
        lineno: Original line number for diagnostics

    Returns:
        The parsed module declaration

    Raises:
        DescriptionSyntaxError: If the line is malformed
    """
    name_end = line.find("]")
    if not line.startswith("[") or name_end == -1:
        raise _fail("could not find module name", lineno)
    name = line[1:name_end].strip()
    if not name:
        raise _fail("the module name cannot be empty", lineno)
    rest = line[name_end + 1 :].strip()

    if not rest.startswith("="):
        raise _fail("unable to separate module name from value", lineno)
    rest = rest[1:].strip()

    path_end = rest.find('"', 1)
    if not rest.startswith('"') or path_end == -1:
        raise _fail("could not find shader file name", lineno)
    source_file = rest[1:path_end].strip()
    if not source_file:
        raise _fail("shader file path cannot be empty", lineno)
    rest = rest[path_end + 1 :].strip()

    extension = PurePosixPath(source_file).suffix.lstrip(".")
    stage = ShaderStage.from_token(extension)
    if stage is None:
        raise _fail(
            f"the file extension '.{extension}' does not appear to be a valid "
            "shader stage",
            lineno,
        )
    if not is_relative_path(source_file):
        raise _fail(
            f"the file path '{source_file}' is not a valid relative path", lineno
        )

    if not rest.startswith("@"):
        raise _fail("could not find shader entry point", lineno)
    tokens = rest.split()
    entry_point = tokens[0][1:]
    if not entry_point:
        raise _fail("shader entry point was not given, or was empty", lineno)

    macros = tuple(parse_macro(token, lineno) for token in tokens[1:])

    return ModuleDecl(
        name=name,
        stage=stage,
        source_file=source_file,
        entry_point=entry_point,
        macros=macros,
    )


def parse_shader_header(line: str, lineno: int) -> str:
    """Parse a ``shader [Name] {`` header and return the program name."""
    if not line.startswith("shader"):
        raise _fail("expected shader block", lineno)
    match = _SHADER_HEADER_RE.match(line)
    if match is None:
        raise _fail("unable to find shader name", lineno)
    name = match.group("name").strip()
    if not name:
        raise _fail("the shader name cannot be empty", lineno)
    if match.group("rest").strip() != "{":
        raise _fail("expected opening brace for shader block", lineno)
    return name


def parse_shader_stage(
    line: str,
    lineno: int,
    modules: dict[str, ModuleDecl],
    program: ShaderProgramDecl,
) -> None:
    """Parse a ``stage = [Module]`` line and assign it to the program.

    Raises:
        DescriptionSyntaxError: If the line is malformed, the module is unknown,
            the stage is already assigned or the module has another stage kind
    """
    token, sep, module_ref = line.partition("=")
    if not sep:
        raise _fail(
            "unable to split shader stage into stage and module components", lineno
        )
    token = token.strip()
    module_ref = module_ref.strip()

    stage = ShaderStage.from_token(token)
    if stage is None:
        raise _fail(f"the shader stage '{token}' is not valid", lineno)
    if not (module_ref.startswith("[") and module_ref.endswith("]")):
        raise _fail("unable to find module name", lineno)
    module_name = module_ref[1:-1].strip()
    if not module_name:
        raise _fail("the module name cannot be empty", lineno)

    module = modules.get(module_name)
    if module is None:
        raise _fail(
            f"the module '{module_name}' does not exist in the shader set file",
            lineno,
        )
    if program.get_stage(stage) is not None:
        raise _fail(f"the shader already has a {stage.label} stage", lineno)
    if module.stage != stage:
        raise _fail(
            f"the module '{module_name}' is a {module.stage.label} module and "
            f"cannot be used as the {stage.label} stage",
            lineno,
        )
    program.set_stage(stage, module_name)


def parse_description(
    raw_lines: Iterable[str], log: "Logger | None" = None
) -> ShaderSetDescription:
    """Parse the lines of a shader-set description file.

    Args:
        raw_lines: Raw text lines of the description
        log: Logger to report warnings and progress to

    Returns:
        The complete, validated description

    Raises:
        DescriptionSyntaxError: On the first structural error
    """
    log = log or logger
    lines = strip_lines(raw_lines)

    if not lines or lines[0][0].replace(" ", "") != "modules{":
        lineno = lines[0][1] if lines else None
        raise _fail(
            "the modules block must be the first component in a shader set file",
            lineno,
        )

    modules_end = _find_block_end(lines, 1)
    if modules_end == -1:
        raise _fail(
            "the modules block is not closed in the shader set file", lines[0][1]
        )
    if modules_end == 1:
        log.warning(
            "The shader set file does not contain any modules, "
            "and will not produce any shaders."
        )
        return ShaderSetDescription()

    modules: dict[str, ModuleDecl] = {}
    for line, lineno in lines[1:modules_end]:
        module = parse_module(line, lineno)
        if module.name in modules:
            raise _fail(
                f"a module with the name '{module.name}' already exists in the "
                "shader set file",
                lineno,
            )
        modules[module.name] = module
    log.info(
        f"Found {len(modules)} modules in shader set: {', '.join(modules)}."
    )

    programs: list[ShaderProgramDecl] = []
    index = modules_end + 1
    while index < len(lines):
        line, lineno = lines[index]
        name = parse_shader_header(line, lineno)
        if any(program.name == name for program in programs):
            raise _fail(
                f"a shader with the name '{name}' already exists in the shader "
                "set file",
                lineno,
            )

        block_end = _find_block_end(lines, index + 1)
        if block_end == -1:
            raise _fail(
                f"the shader '{name}' block does not close before the end of "
                "the file",
                lineno,
            )

        program = ShaderProgramDecl(name=name)
        for stage_line, stage_lineno in lines[index + 1 : block_end]:
            parse_shader_stage(stage_line, stage_lineno, modules, program)

        if program.vert is None:
            raise _fail(
                f"the shader '{name}' does not have a vertex shader stage", lineno
            )

        programs.append(program)
        index = block_end + 1

    if not programs:
        log.warning("The shader set file does not contain any shaders.")

    return ShaderSetDescription(modules=list(modules.values()), programs=programs)


def parse_description_file(
    path: str | Path, log: "Logger | None" = None
) -> ShaderSetDescription:
    """Read a UTF-8 description file and parse it.

    Args:
        path: Path to the description file
        log: Logger to report warnings and progress to

    Returns:
        The parsed description

    Raises:
        DescriptionSyntaxError: If the file is malformed; the message names
            the file
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        return parse_description(text.splitlines(), log)
    except DescriptionSyntaxError as e:
        raise DescriptionSyntaxError(
            e.message, file_path=Path(path).name, lineno=e.lineno
        ) from e
