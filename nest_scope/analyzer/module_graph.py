"""NestJS module visibility graph built from @Module() decorators.

Edge (A, B) in the underlying NetworkX graph means "module A imports module B",
so the modules that can see B's exports are B itself and B's predecessors.
"""
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set

import networkx as nx
from tree_sitter import Node

from .models import ModuleGraphNode, NestModule
from .parser import (
    CLASS_TYPES,
    class_decorators,
    class_name,
    decorator_arguments,
    decorator_name,
    node_text,
    parse_document,
    walk,
)
from .workspace import (
    MODULE_FILE_PATTERN,
    DocumentProvider,
    FileEnumerator,
    TextDocument,
)
from ..utils.logger import OutputLog

MODULE_DECORATOR = 'Module'
METADATA_PROPERTIES = ('imports', 'exports', 'providers', 'controllers')


def file_name_to_class_name(file_path: str | Path) -> str:
    """Derive the conventional class name of a file (user.service.ts -> UserService)."""
    stem = Path(file_path).stem
    return ''.join(part[:1].upper() + part[1:] for part in re.split(r'[.\-_]', stem) if part)


def _is_within(directory: str, ancestor: str) -> bool:
    return directory == ancestor or directory.startswith(ancestor.rstrip(os.sep) + os.sep)


class ModuleGraph(Mapping):
    """Immutable mapping of module name to ModuleGraphNode.

    A rebuild produces a new instance; nothing mutates an existing one.
    """

    def __init__(self, modules: Iterable[NestModule] = ()):
        """Build nodes and the transposed import relation.

        Args:
            modules: Modules with unique names
        """
        modules = list(modules)
        digraph = nx.DiGraph()
        for module in modules:
            digraph.add_node(module.name, module=module)

        for module in modules:
            for imported in module.imports:
                # Dangling imports stay in Module.imports but get no edge
                if imported in digraph:
                    digraph.add_edge(module.name, imported)

        self._nodes: Dict[str, ModuleGraphNode] = {
            module.name: ModuleGraphNode(
                module=module,
                imports=frozenset(module.imports),
                imported_by=frozenset(digraph.predecessors(module.name)),
            )
            for module in modules
        }
        self._digraph = nx.freeze(digraph)

        # Deepest module directory first, then path: deterministic tie-break
        self._by_depth: List[NestModule] = sorted(
            modules,
            key=lambda m: (-len(Path(m.file_path).parent.parts), m.file_path),
        )

    def __getitem__(self, name: str) -> ModuleGraphNode:
        return self._nodes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def digraph(self) -> nx.DiGraph:
        """Frozen import graph (edge importer -> imported)."""
        return self._digraph

    def module_directory(self, name: str) -> Optional[str]:
        node = self._nodes.get(name)
        return os.path.dirname(node.module.file_path) if node else None

    def get_module_for_file(self, file_path: str) -> Optional[NestModule]:
        """Best-effort lookup of the module a file belongs to.

        Resolution order:
        1. the file is a module file
        2. the file sits in or below a module's directory and its derived
           class name is one of that module's providers or controllers
        3. the deepest module whose directory contains the file
        """
        for node in self._nodes.values():
            if node.module.file_path == file_path:
                return node.module

        directory = os.path.dirname(file_path)
        derived_name = file_name_to_class_name(file_path)

        for module in self._by_depth:
            if _is_within(directory, os.path.dirname(module.file_path)) and module.owns(derived_name):
                return module

        for module in self._by_depth:
            if _is_within(directory, os.path.dirname(module.file_path)):
                return module

        return None

    def get_accessible_modules(self, name: str) -> Set[str]:
        """The module itself plus the modules that import it directly.

        One hop only: a module importing an importer of `name` is not included.
        """
        accessible = {name}
        node = self._nodes.get(name)
        if node:
            accessible.update(node.imported_by)
        return accessible

    def get_accessible_files(self, name: str) -> Set[str]:
        """Module-declaration files of every accessible module.

        Provider and controller files are not listed here; the usage search
        widens scope to whole module directories instead.
        """
        files = set()
        for module_name in self.get_accessible_modules(name):
            node = self._nodes.get(module_name)
            if node:
                files.add(node.module.file_path)
        return files


class ModuleGraphBuilder:
    """Scan module files and assemble a ModuleGraph."""

    COMPONENT = 'ModuleGraph'

    def __init__(self, workspace: FileEnumerator, documents: DocumentProvider, log: OutputLog):
        """Initialize graph builder.

        Args:
            workspace: Enumerates module files
            documents: Supplies module file text
            log: Output log for progress and per-file failures
        """
        self.workspace = workspace
        self.documents = documents
        self.log = log

    async def build_graph(self) -> ModuleGraph:
        """Build a fresh graph from every module file in the workspace.

        Files that fail to read or parse contribute nothing. Enumeration failures
        propagate to the caller.
        """
        module_files = await self.workspace.find_files([MODULE_FILE_PATTERN])

        modules: Dict[str, NestModule] = {}
        for file_path in module_files:
            module = await self._process_file(file_path)
            if module is None:
                continue
            previous = modules.get(module.name)
            if previous is not None:
                self.log.append_line(
                    self.COMPONENT,
                    f"Duplicate module {module.name} in {module.file_path} replaces {previous.file_path}",
                )
            modules[module.name] = module

        graph = ModuleGraph(modules.values())
        self.log.append_line(self.COMPONENT, f"Built module graph with {len(graph)} modules")
        return graph

    async def _process_file(self, file_path: str) -> Optional[NestModule]:
        try:
            document = await self.documents.open_document(file_path)
            return self.extract_module(document)
        except Exception as e:
            self.log.append_line(self.COMPONENT, f"Error parsing module {file_path}: {e}")
            return None

    def extract_module(self, document: TextDocument) -> Optional[NestModule]:
        """Return the first @Module()-decorated class of a document, if any."""
        tree = parse_document(document)
        if tree is None:
            return None

        source = document.source
        for node in walk(tree.root_node):
            if node.type not in CLASS_TYPES:
                continue
            name = class_name(node, source)
            metadata = self._find_module_metadata(node, source)
            if name and metadata is not None:
                properties = self._extract_array_properties(metadata, source)
                return NestModule(name=name, file_path=document.path, **properties)
        return None

    def _find_module_metadata(self, class_node: Node, source: bytes) -> Optional[Node]:
        """The object literal passed to @Module() on a class, if any."""
        for decorator in class_decorators(class_node):
            if decorator_name(decorator, source) != MODULE_DECORATOR:
                continue
            arguments = decorator_arguments(decorator)
            if arguments and arguments[0].type == 'object':
                return arguments[0]
        return None

    def _extract_array_properties(self, metadata: Node, source: bytes) -> Dict[str, tuple]:
        """Identifier elements of the imports/exports/providers/controllers arrays.

        Anything that is not a bare identifier (forwardRef(), X.forRoot(),
        spreads, provider objects) is skipped.
        """
        found: Dict[str, List[str]] = {name: [] for name in METADATA_PROPERTIES}
        for pair in metadata.named_children:
            if pair.type != 'pair':
                continue
            key = pair.child_by_field_name('key')
            value = pair.child_by_field_name('value')
            if key is None or value is None or value.type != 'array':
                continue
            property_name = node_text(key, source).strip('\'"')
            if property_name not in found:
                continue
            for element in value.named_children:
                if element.type == 'identifier':
                    found[property_name].append(node_text(element, source))
        return {name: tuple(values) for name, values in found.items()}
