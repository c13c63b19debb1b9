"""Scope-restricted usage search.

Walks the syntax trees of candidate files for identifiers named like the
target symbol, dropping declaration sites and, for member symbols, any
access whose receiver is not annotated with the expected type.
"""
import asyncio
from typing import Iterable, List, Optional, Set

from tree_sitter import Node

from .models import Position, Range, UsageLocation
from .module_graph import ModuleGraph
from .parser import (
    FIELD_TYPES,
    FUNCTION_TYPES,
    IDENTIFIER_TYPES,
    METHOD_TYPES,
    PARAMETER_TYPES,
    TYPE_DECLARATION_TYPES,
    is_same_node,
    parse_document,
    walk,
)
from .resolver import TypeAnnotationIndex, member_receiver, symbol_at
from .workspace import (
    SOURCE_FILE_PATTERNS,
    DocumentProvider,
    FileEnumerator,
    TextDocument,
)
from ..utils.logger import OutputLog

# Files read and searched concurrently
BATCH_SIZE = 10

_NAMED_DECLARATIONS = (
    TYPE_DECLARATION_TYPES | FUNCTION_TYPES | METHOD_TYPES | FIELD_TYPES | {'variable_declarator'}
)


def is_declaration(node: Node) -> bool:
    """True if the identifier introduces a name rather than referring to one."""
    if node.type == 'shorthand_property_identifier_pattern':
        return True

    parent = node.parent
    if parent is None:
        return False

    if parent.type in _NAMED_DECLARATIONS:
        return is_same_node(parent.child_by_field_name('name'), node)
    if parent.type in PARAMETER_TYPES:
        return is_same_node(parent.child_by_field_name('pattern'), node)
    if parent.type == 'arrow_function':
        return is_same_node(parent.child_by_field_name('parameter'), node)
    if parent.type in ('pair', 'pair_pattern'):
        return is_same_node(parent.child_by_field_name('key'), node)
    # Enum members: `enum E { A, B = 2 }`
    if parent.type == 'enum_body':
        return True
    if parent.type == 'enum_assignment':
        name = parent.child_by_field_name('name')
        if name is None:
            name = parent.named_children[0]
        return is_same_node(name, node)
    return False


class UsageFinder:
    """Find usages of a symbol within the files its module can see."""

    COMPONENT = 'UsageFinder'

    def __init__(self, workspace: FileEnumerator, documents: DocumentProvider, log: OutputLog):
        self.workspace = workspace
        self.documents = documents
        self.log = log

    async def find_usages(
        self,
        document: TextDocument,
        position: Position,
        graph: Optional[ModuleGraph],
        enable_module_scoping: bool,
        container_name: Optional[str] = None,
    ) -> List[UsageLocation]:
        """Find all usages of the symbol at `position`.

        Args:
            document: Document containing the cursor
            position: Cursor position
            graph: Module graph used for scoping and module annotations
            enable_module_scoping: Limit the search to accessible modules
            container_name: Declared type the receiver must have, when known

        Returns:
            Usages sorted by file path, then line. Empty when the cursor is
            on `recv.symbol` and `recv`'s type cannot be determined.
        """
        tree = parse_document(document)
        symbol = symbol_at(document, position, tree)
        if symbol is None:
            return []

        if container_name is None and symbol.is_property_access:
            receiver = member_receiver(symbol.node)
            container_name = TypeAnnotationIndex(tree, document.source).receiver_type(receiver)
            if container_name is None:
                self.log.append_line(
                    self.COMPONENT,
                    f"Receiver type of \"{symbol.name}\" is not annotated; no usages reported",
                )
                return []

        scope_files = None
        if enable_module_scoping and graph is not None:
            module = graph.get_module_for_file(document.path)
            if module is not None:
                scope_files = await self.get_module_scope_files(graph, module.name)

        usages = await self.search_usages(symbol.name, scope_files, container_name, graph)

        qualified = f"{container_name}.{symbol.name}" if container_name else symbol.name
        scoped = " (module-scoped)" if scope_files is not None else ""
        self.log.append_line(self.COMPONENT, f"Found {len(usages)} usages of \"{qualified}\"{scoped}")
        return usages

    async def get_module_scope_files(self, graph: ModuleGraph, module_name: str) -> Set[str]:
        """Every source file under the directories of the accessible modules."""
        files = set()
        for accessible in sorted(graph.get_accessible_modules(module_name)):
            node = graph.get(accessible)
            if node is None:
                continue
            files.add(node.module.file_path)
            module_dir = graph.module_directory(accessible)
            files.update(await self.workspace.find_files(SOURCE_FILE_PATTERNS, base=module_dir))
        return files

    async def search_usages(
        self,
        symbol_name: str,
        scope_files: Optional[Iterable[str]],
        container_name: Optional[str] = None,
        graph: Optional[ModuleGraph] = None,
    ) -> List[UsageLocation]:
        """Search candidate files in batches and return sorted usages.

        Args:
            symbol_name: Identifier text to match
            scope_files: Candidate files, or None for the whole workspace
            container_name: Required receiver type, if any
            graph: Used to annotate usages with their module
        """
        if scope_files is not None:
            files = sorted(scope_files)
        else:
            files = await self.workspace.find_files(SOURCE_FILE_PATTERNS)

        usages: List[UsageLocation] = []
        for start in range(0, len(files), BATCH_SIZE):
            batch = files[start:start + BATCH_SIZE]
            results = await asyncio.gather(
                *(self.search_in_file(path, symbol_name, container_name, graph) for path in batch)
            )
            for file_usages in results:
                usages.extend(file_usages)

        # Stable: occurrences on one line keep their source order
        usages.sort(key=lambda usage: (usage.file_path, usage.range.start.line))
        return usages

    async def search_in_file(
        self,
        file_path: str,
        symbol_name: str,
        container_name: Optional[str] = None,
        graph: Optional[ModuleGraph] = None,
    ) -> List[UsageLocation]:
        """Usages in one file.

        Any failure reading or searching the file is logged and yields no
        usages, so one bad file never aborts the rest of its batch.
        """
        module_name = None
        if graph is not None:
            module = graph.get_module_for_file(file_path)
            module_name = module.name if module is not None else None

        try:
            document = await self.documents.open_document(file_path)
            return self.find_in_document(document, symbol_name, container_name, module_name)
        except Exception as e:
            self.log.append_line(self.COMPONENT, f"Error searching file {file_path}: {e}")
            return []

    def find_in_document(
        self,
        document: TextDocument,
        symbol_name: str,
        container_name: Optional[str] = None,
        module_name: Optional[str] = None,
    ) -> List[UsageLocation]:
        name_bytes = symbol_name.encode('utf-8')
        if name_bytes not in document.source:
            return []

        tree = parse_document(document)
        if tree is None:
            return []

        source = document.source
        types = TypeAnnotationIndex(tree, source) if container_name else None
        usages = []

        for node in walk(tree.root_node):
            if node.type not in IDENTIFIER_TYPES:
                continue
            if source[node.start_byte:node.end_byte] != name_bytes:
                continue
            if is_declaration(node):
                continue

            receiver = member_receiver(node)
            if types is not None:
                if receiver is None or types.receiver_type(receiver) != container_name:
                    continue
            elif receiver is not None:
                continue

            start = document.position_at(node.start_byte)
            usages.append(UsageLocation(
                file_path=document.path,
                range=Range(start, document.position_at(node.end_byte)),
                preview=document.line_at(start.line).strip(),
                module_name=module_name,
            ))

        return usages
