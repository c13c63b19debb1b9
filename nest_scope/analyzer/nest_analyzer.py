"""Analyzer facade.

Coordinates the module graph, definition resolution, usage search and the
query cache. The module graph is built lazily on the first query and shared
by every caller that arrives while the build is in flight.
"""
import asyncio
import time
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .cache import IndexCache, file_prefix, query_key
from .models import Position, SymbolDefinition, UsageLocation
from .module_graph import ModuleGraph, ModuleGraphBuilder
from .parser import parse_document
from .resolver import SymbolResolver, symbol_at
from .usage_finder import UsageFinder
from .workspace import DocumentProvider, FileSystemWorkspace, is_module_file
from ..config import Config
from ..utils.logger import OutputLog

USAGES = 'usages'
DEFINITION = 'definition'


class AnalyzerState(str, Enum):
    UNINITIALIZED = 'uninitialized'
    INITIALIZING = 'initializing'
    READY = 'ready'


def normalize_path(file_path: str | Path) -> str:
    return str(Path(file_path).resolve())


class NestAnalyzer:
    """Entry point for definition and usage queries."""

    COMPONENT = 'Analyzer'

    def __init__(
        self,
        workspace,
        cache: Optional[IndexCache] = None,
        log: Optional[OutputLog] = None,
        enable_module_scoping: bool = True,
        documents: Optional[DocumentProvider] = None,
    ):
        """Initialize the analyzer.

        Args:
            workspace: File enumerator (and document provider unless
                       `documents` is given)
            cache: Query result cache; defaults to 100 entries
            log: Output log shared with every component
            enable_module_scoping: Restrict usage search to accessible modules
            documents: Document provider overriding the workspace's
        """
        self.workspace = workspace
        self.documents = documents if documents is not None else workspace
        self.cache = cache if cache is not None else IndexCache()
        self.log = log if log is not None else OutputLog()
        self.enable_module_scoping = enable_module_scoping

        self.graph_builder = ModuleGraphBuilder(self.workspace, self.documents, self.log)
        self.resolver = SymbolResolver(self.workspace, self.documents, self.log)
        self.usage_finder = UsageFinder(self.workspace, self.documents, self.log)

        self._state = AnalyzerState.UNINITIALIZED
        self._graph: Optional[ModuleGraph] = None
        self._build_task: Optional[asyncio.Task] = None
        # Bumped whenever cached results may be stale; in-flight queries compare
        # it before storing
        self._generation = 0

    @classmethod
    def from_config(cls, workspace_root: str | Path, config: Config) -> 'NestAnalyzer':
        """Analyzer over a directory on disk, sized by configuration."""
        return cls(
            FileSystemWorkspace(workspace_root),
            cache=IndexCache(config.cache_size),
            log=OutputLog(verbose=config.verbose),
            enable_module_scoping=config.enable_module_scoping,
        )

    @property
    def state(self) -> AnalyzerState:
        return self._state

    @property
    def graph(self) -> Optional[ModuleGraph]:
        """The current module graph; None until the first build completes."""
        return self._graph

    async def initialize(self):
        """Build the module graph once. Concurrent callers share one build."""
        if self._state is AnalyzerState.READY:
            return
        await self._ensure_build()

    def _ensure_build(self) -> asyncio.Task:
        if self._build_task is None:
            self._state = AnalyzerState.INITIALIZING
            self._build_task = asyncio.ensure_future(self._build())
        return self._build_task

    async def _build(self):
        self.log.append_line(self.COMPONENT, "Initializing NestJS analyzer...")
        start_time = time.perf_counter()
        try:
            graph = await self.graph_builder.build_graph()
        except Exception:
            self._state = AnalyzerState.UNINITIALIZED
            raise
        finally:
            self._build_task = None

        self._graph = graph
        self._state = AnalyzerState.READY
        elapsed = (time.perf_counter() - start_time) * 1000
        self.log.append_line(self.COMPONENT, f"Analyzer initialized in {elapsed:.0f}ms")

    async def find_usages(self, file_path: str | Path, line: int, character: int) -> List[UsageLocation]:
        """Usages of the symbol at a zero-based line/character position."""
        await self.initialize()
        generation = self._generation

        path = normalize_path(file_path)
        key = query_key(USAGES, path, line, character)
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        document = await self.documents.open_document(path)
        position = Position(line, character)

        # On `recv.symbol` the usage finder infers the receiver type itself
        container_name = None
        symbol = symbol_at(document, position, parse_document(document))
        if symbol is not None and not symbol.is_property_access:
            definition = await self.resolver.find_definition(document, position)
            container_name = definition.container_name if definition else None

        usages = await self.usage_finder.find_usages(
            document, position, self._graph, self.enable_module_scoping, container_name
        )

        if generation == self._generation:
            self.cache.set(key, tuple(usages))
        return usages

    async def find_definition(self, file_path: str | Path, line: int, character: int) -> Optional[SymbolDefinition]:
        """Declaration of the symbol at a zero-based line/character position."""
        await self.initialize()
        generation = self._generation

        path = normalize_path(file_path)
        key = query_key(DEFINITION, path, line, character)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        document = await self.documents.open_document(path)
        definition = await self.resolver.find_definition(document, Position(line, character))

        if definition is not None and generation == self._generation:
            self.cache.set(key, definition)
        return definition

    def get_module_for_file(self, file_path: str | Path) -> Optional[str]:
        if self._graph is None:
            return None
        module = self._graph.get_module_for_file(normalize_path(file_path))
        return module.name if module else None

    def invalidate_file(self, file_path: str | Path):
        """Drop cached results of queries made from one file."""
        path = normalize_path(file_path)
        self._generation += 1
        self.cache.invalidate_by_prefix(file_prefix(USAGES, path))
        self.cache.invalidate_by_prefix(file_prefix(DEFINITION, path))
        self.log.append_line(self.COMPONENT, f"Cache invalidated for: {path}")

    async def rebuild_module_graph(self):
        """Rebuild the graph from scratch and clear every cached result."""
        self.log.append_line(self.COMPONENT, "Rebuilding module graph...")
        self.cache.clear()
        self._generation += 1
        if self._build_task is not None:
            # A build already running may predate the change that triggered this one
            await self._build_task
        await self._ensure_build()
        self.cache.clear()
        self._generation += 1
        self.log.append_line(self.COMPONENT, "Module graph rebuilt")

    async def handle_file_change(self, file_path: str | Path, event: str = 'changed'):
        """Apply a change notification: created, changed and deleted are treated alike."""
        if is_module_file(file_path):
            await self.rebuild_module_graph()
        else:
            self.invalidate_file(file_path)
