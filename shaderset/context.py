"""
Build context for one shader-set content item.

The pipeline does not own logging sinks or scratch files. Both are injected
through a BuildContext: a loguru logger bound to the item name and a
temp-file allocator that hands out a fresh writable path per call.
"""

import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger


class TempFileAllocator:
    """Allocates scratch files inside a private temporary directory."""

    def __init__(self, prefix: str = "shaderset-"):
        self.directory = Path(tempfile.mkdtemp(prefix=prefix))
        self._count = 0

    def __call__(self) -> Path:
        path = self.directory / f"{self._count:04d}.tmp"
        self._count += 1
        return path

    def cleanup(self) -> None:
        shutil.rmtree(self.directory, ignore_errors=True)

    def __enter__(self) -> "TempFileAllocator":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()


@dataclass
class BuildContext:
    """Capabilities provided to the pipeline for one content item.

    Attributes:
        item_name: Name of the content item, used to key log messages
        file_directory: Directory of the description file
        logger: Logger bound to the item
        temp_file: Returns a fresh writable scratch path per call
    """

    item_name: str
    file_directory: Path
    logger: "Logger"
    temp_file: Callable[[], Path]

    @classmethod
    def for_file(
        cls, path: str | Path, temp_file: Callable[[], Path]
    ) -> "BuildContext":
        """Create a context for a description file on disk."""
        path = Path(path)
        return cls(
            item_name=path.name,
            file_directory=path.resolve().parent,
            logger=logger.bind(item=path.name),
            temp_file=temp_file,
        )
