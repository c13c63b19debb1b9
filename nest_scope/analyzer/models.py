"""Data model shared by the analyzer components."""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Optional, Tuple


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based line and character (code point) offset."""
    line: int
    character: int


@dataclass(frozen=True)
class Range:
    """Half-open source range [start, end)."""
    start: Position
    end: Position

    def contains(self, position: Position) -> bool:
        return self.start <= position < self.end


@dataclass(frozen=True)
class NestModule:
    """A class decorated with @Module() and the metadata of its decorator."""
    name: str
    file_path: str
    imports: Tuple[str, ...] = ()
    exports: Tuple[str, ...] = ()
    providers: Tuple[str, ...] = ()
    controllers: Tuple[str, ...] = ()

    def owns(self, class_name: str) -> bool:
        """True if the class is listed as one of this module's providers or controllers."""
        return class_name in self.providers or class_name in self.controllers


@dataclass(frozen=True)
class ModuleGraphNode:
    """A module plus its edges in the visibility graph."""
    module: NestModule
    imports: FrozenSet[str]
    imported_by: FrozenSet[str]

    @property
    def name(self) -> str:
        return self.module.name


class SymbolKind(str, Enum):
    """Kinds of declarations the resolver can return."""
    CLASS = 'class'
    METHOD = 'method'
    FIELD = 'field'
    FUNCTION = 'function'
    INJECTABLE = 'injectable'
    CONTROLLER = 'controller'
    MODULE = 'module'

    @property
    def label(self) -> str:
        return self.value

    @property
    def icon(self) -> str:
        return _KIND_ICONS.get(self, '•')


_KIND_ICONS = {
    SymbolKind.CLASS: '🔷',
    SymbolKind.METHOD: '🔹',
    SymbolKind.FIELD: '🔸',
    SymbolKind.FUNCTION: '⚡',
    SymbolKind.INJECTABLE: '💉',
    SymbolKind.CONTROLLER: '🎮',
    SymbolKind.MODULE: '📦',
}

# Class decorators that upgrade a plain class kind
DECORATOR_KINDS = {
    'Injectable': SymbolKind.INJECTABLE,
    'Controller': SymbolKind.CONTROLLER,
    'Module': SymbolKind.MODULE,
}


@dataclass(frozen=True)
class SymbolDefinition:
    """Where a symbol is declared."""
    name: str
    file_path: str
    range: Range
    kind: SymbolKind
    container_name: Optional[str] = None


@dataclass(frozen=True)
class UsageLocation:
    """One reference to a symbol."""
    file_path: str
    range: Range
    preview: str
    module_name: Optional[str] = None

    @property
    def line(self) -> int:
        return self.range.start.line


@dataclass
class CacheEntry:
    """A cached query result and when it was stored."""
    value: Any
    timestamp: float = field(default_factory=time.time)
