"""Tests for the shaderset command line interface."""

import sys
import textwrap
from unittest.mock import patch

import pytest
from loguru import logger
from typer.testing import CliRunner

from shaderset.main import ShaderSetChangeHandler, app
from shaderset.writer import pack_shader_set

runner = CliRunner()

TOOL = "/usr/bin/glslangValidator"
WHICH = "shaderset.compiler.shutil.which"

DESCRIPTION = textwrap.dedent(
    """
    modules {
        [BasicVert] = "basic.vert" @main !USE_COLOR
        [BasicFrag] = "basic.frag" @main
    }
    shader [Basic] {
        vert = [BasicVert]
        frag = [BasicFrag]
    }
    """
)


@pytest.fixture(autouse=True)
def restore_logger():
    """The CLI callback replaces loguru handlers; put the default back."""
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def description(tmp_path):
    (tmp_path / "basic.vert").write_text("#version 450\n")
    (tmp_path / "basic.frag").write_text("#version 450\n")
    path = tmp_path / "basic.pss"
    path.write_text(DESCRIPTION)
    return path


def test_help():
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("build", "check", "inspect", "watch"):
        assert command in result.stdout


def test_check(description):
    result = runner.invoke(app, ["check", str(description)])

    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    for expected in [
        "module BasicVert: vert basic.vert @main -DUSE_COLOR",
        "module BasicFrag: frag basic.frag @main",
        "shader Basic: vert=BasicVert, frag=BasicFrag",
    ]:
        assert expected in lines


def test_check_invalid(tmp_path):
    path = tmp_path / "bad.pss"
    path.write_text("shader [Basic] {\n}\n")

    result = runner.invoke(app, ["check", str(path)])

    assert result.exit_code == 1


def test_check_missing_file(tmp_path):
    result = runner.invoke(app, ["check", str(tmp_path / "missing.pss")])
    assert result.exit_code == 1


def test_inspect(basic_description, tmp_path):
    artifact = tmp_path / "basic.bin"
    artifact.write_bytes(pack_shader_set(basic_description, [bytes(8), bytes(4)]))

    result = runner.invoke(app, ["inspect", str(artifact)])

    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    for expected in [
        "2 modules, 1 shaders",
        "shader Basic: vert=BasicVert, frag=BasicFrag",
        "module 0 BasicVert: vert @main (8 bytes)",
        "module 1 BasicFrag: frag @main (4 bytes)",
    ]:
        assert expected in lines


def test_inspect_invalid(tmp_path):
    artifact = tmp_path / "junk.bin"
    artifact.write_bytes(b"\x01\x00")

    result = runner.invoke(app, ["inspect", str(artifact)])

    assert result.exit_code == 1


def test_build(description, tmp_path, vertex_dumps, fragment_dumps, fake_glslang):
    output = tmp_path / "basic.bin"
    outputs = {"vert": vertex_dumps(), "frag": fragment_dumps()}

    with patch(WHICH, return_value=TOOL), patch(
        "shaderset.compiler.subprocess.run", side_effect=fake_glslang(outputs)
    ):
        result = runner.invoke(
            app,
            ["build", str(description), str(output), "--glslang", TOOL],
        )

    assert result.exit_code == 0
    assert output.is_file()


def test_build_failure(
    description, tmp_path, vertex_dumps, fragment_dumps, fake_glslang
):
    output = tmp_path / "basic.bin"
    outputs = {"vert": vertex_dumps(), "frag": fragment_dumps()}

    with patch(WHICH, return_value=TOOL), patch(
        "shaderset.compiler.subprocess.run",
        side_effect=fake_glslang(outputs, errors={"vert": "2: 'x' : syntax error"}),
    ):
        result = runner.invoke(
            app,
            ["build", str(description), str(output), "--glslang", TOOL],
        )

    assert result.exit_code == 1
    assert not output.exists()


class TestChangeHandler:
    """Test cases for the watch mode event handler."""

    class Event:
        def __init__(self, src_path, is_directory=False):
            self.src_path = str(src_path)
            self.is_directory = is_directory

    def test_description_change(self, description):
        handler = ShaderSetChangeHandler(description)
        handler.on_modified(self.Event(description))
        assert handler.needs_rebuild

    def test_shader_source_change(self, description):
        handler = ShaderSetChangeHandler(description)
        handler.on_created(self.Event(description.parent / "lighting.glsl"))
        assert handler.needs_rebuild

    @pytest.mark.parametrize("name, is_directory", [("notes.txt", False), ("shaders", True)])
    def test_ignored(self, description, name, is_directory):
        handler = ShaderSetChangeHandler(description)
        handler.on_modified(self.Event(description.parent / name, is_directory))
        assert not handler.needs_rebuild
