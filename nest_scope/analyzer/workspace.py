"""Host collaborators: documents and workspace file enumeration.

The analyzer never touches the file system directly. It asks a
`DocumentProvider` for document text and a `FileEnumerator` for file lists,
so an editor host can serve unsaved buffers and its own file index.
`FileSystemWorkspace` is the on-disk implementation of both.
"""
import asyncio
import bisect
import re
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Set

from .models import Position, Range

# Directories never searched, for module files or usages
EXCLUDED_DIRS = frozenset({
    'node_modules', 'dist', 'out', 'build', '.git', 'coverage',
})

MODULE_FILE_PATTERN = '**/*.module.ts'
MODULE_FILE_SUFFIX = '.module.ts'
SOURCE_FILE_PATTERNS = ('**/*.ts', '**/*.tsx')

# TypeScript identifier characters; a word never starts with a digit
_WORD_RE = re.compile(r'[A-Za-z_$][A-Za-z0-9_$]*')


def is_excluded_path(path: str | Path) -> bool:
    """True if any directory component of the path is an excluded directory."""
    return any(part in EXCLUDED_DIRS for part in Path(path).parts[:-1])


def is_module_file(path: str | Path) -> bool:
    return str(path).endswith(MODULE_FILE_SUFFIX)


class TextDocument:
    """Document text with byte-offset and line/character position mapping.

    Syntax trees address source by UTF-8 byte offsets; callers address it by
    line and character. Both views are kept here.
    """

    def __init__(self, path: str, text: str):
        self.path = path
        self.text = text
        self.source = text.encode('utf-8')
        self._line_starts = [0]
        for index, byte in enumerate(self.source):
            if byte == 0x0A:
                self._line_starts.append(index + 1)

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def _line_bytes(self, line: int) -> bytes:
        start = self._line_starts[line]
        if line + 1 < len(self._line_starts):
            end = self._line_starts[line + 1] - 1
        else:
            end = len(self.source)
        return self.source[start:end]

    def line_at(self, line: int) -> str:
        """Text of a line without its line terminator."""
        if line < 0 or line >= self.line_count:
            raise IndexError(f"line {line} out of range for {self.path}")
        return self._line_bytes(line).decode('utf-8', errors='replace').rstrip('\r')

    def position_at(self, byte_offset: int) -> Position:
        """Convert a UTF-8 byte offset to a line/character position."""
        byte_offset = max(0, min(byte_offset, len(self.source)))
        line = bisect.bisect_right(self._line_starts, byte_offset) - 1
        prefix = self.source[self._line_starts[line]:byte_offset]
        return Position(line, len(prefix.decode('utf-8', errors='replace')))

    def offset_at(self, position: Position) -> int:
        """Convert a line/character position to a UTF-8 byte offset.

        Positions past the end of a line clamp to the end of that line.
        """
        line = max(0, min(position.line, self.line_count - 1))
        text = self.line_at(line)
        character = max(0, min(position.character, len(text)))
        return self._line_starts[line] + len(text[:character].encode('utf-8'))

    def range_of(self, start_byte: int, end_byte: int) -> Range:
        return Range(self.position_at(start_byte), self.position_at(end_byte))

    def word_range_at(self, position: Position) -> Optional[Range]:
        """Range of the identifier touching `position`, or None.

        A cursor directly after the last character of a word still selects it.
        """
        if position.line < 0 or position.line >= self.line_count:
            return None
        text = self.line_at(position.line)
        for match in _WORD_RE.finditer(text):
            if match.start() <= position.character <= match.end():
                return Range(
                    Position(position.line, match.start()),
                    Position(position.line, match.end()),
                )
            if match.start() > position.character:
                break
        return None

    def get_text(self, text_range: Range) -> str:
        start = self.offset_at(text_range.start)
        end = self.offset_at(text_range.end)
        return self.source[start:end].decode('utf-8', errors='replace')


class DocumentProvider(Protocol):
    """Supplies the current text of a document."""

    async def open_document(self, path: str) -> TextDocument:
        ...


class FileEnumerator(Protocol):
    """Lists workspace files matching glob patterns, minus excluded directories."""

    async def find_files(self, patterns: Iterable[str], base: Optional[str] = None) -> List[str]:
        ...


class FileSystemWorkspace:
    """Document provider and file enumerator backed by a directory on disk."""

    def __init__(self, root: str | Path):
        """Initialize the workspace.

        Args:
            root: Workspace root directory

        Raises:
            ValueError: If the root is not an existing directory
        """
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise ValueError(f"Workspace root is not a directory: {root}")

    async def open_document(self, path: str) -> TextDocument:
        """Read a document from disk.

        Raises:
            OSError: If the file cannot be read
            UnicodeDecodeError: If the file is not UTF-8 text
        """
        data = await asyncio.to_thread(Path(path).read_bytes)
        return TextDocument(path, data.decode('utf-8'))

    async def find_files(self, patterns: Iterable[str], base: Optional[str] = None) -> List[str]:
        """Find files under the root (or `base`) matching any pattern.

        Returns:
            Sorted absolute paths
        """
        search_root = Path(base).resolve() if base else self.root
        return await asyncio.to_thread(self._discover_files, search_root, tuple(patterns))

    def _discover_files(self, search_root: Path, patterns: tuple) -> List[str]:
        if not search_root.is_dir():
            return []

        files: Set[Path] = set()
        for pattern in patterns:
            files.update(search_root.glob(pattern))

        filtered = set()
        for file_path in files:
            if not file_path.is_file():
                continue
            relative = file_path.relative_to(search_root)
            if any(part in EXCLUDED_DIRS for part in relative.parts[:-1]):
                continue
            filtered.add(str(file_path))

        return sorted(filtered)
