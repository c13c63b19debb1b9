"""Symbol resolution from syntax alone.

Finds where the identifier under the cursor is declared and infers the
declared type of a property-access receiver from explicit type annotations.
No semantic type checking happens here.
"""
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from tree_sitter import Node, Tree

from .models import DECORATOR_KINDS, Position, SymbolDefinition, SymbolKind
from .parser import (
    FIELD_TYPES,
    FUNCTION_TYPES,
    METHOD_TYPES,
    PARAMETER_TYPES,
    TYPE_DECLARATION_TYPES,
    class_decorators,
    class_name,
    decorator_name,
    enclosing_class,
    identifier_at,
    is_same_node,
    is_top_level_declarator,
    node_text,
    parse_document,
    walk,
)
from .workspace import (
    SOURCE_FILE_PATTERNS,
    DocumentProvider,
    FileEnumerator,
    TextDocument,
)
from ..utils.logger import OutputLog


@dataclass(frozen=True)
class CursorSymbol:
    """The identifier under a cursor and its syntactic context."""
    name: str
    start_byte: int
    end_byte: int
    node: Optional[Node]

    @property
    def is_property_access(self) -> bool:
        return member_receiver(self.node) is not None


def symbol_at(document: TextDocument, position: Position, tree: Optional[Tree] = None) -> Optional[CursorSymbol]:
    """Identifier token at `position`, with its syntax node when the tree has one."""
    word_range = document.word_range_at(position)
    if word_range is None:
        return None
    name = document.get_text(word_range)
    if not name:
        return None
    start_byte = document.offset_at(word_range.start)
    end_byte = document.offset_at(word_range.end)
    node = identifier_at(tree, start_byte, end_byte) if tree is not None else None
    return CursorSymbol(name, start_byte, end_byte, node)


def member_receiver(node: Optional[Node]) -> Optional[Node]:
    """Receiver of `receiver.node`, or None if `node` is not a member property."""
    if node is None or node.type != 'property_identifier':
        return None
    parent = node.parent
    if parent is None or parent.type != 'member_expression':
        return None
    if not is_same_node(parent.child_by_field_name('property'), node):
        return None
    return parent.child_by_field_name('object')


def _annotated_type_name(annotation: Optional[Node], source: bytes) -> Optional[str]:
    """Single named type of a `: Type` annotation.

    `Foo` -> Foo, `ns.Foo` -> Foo, `Repository<User>` -> Repository.
    Unions, arrays, literals and function types resolve to nothing.
    """
    if annotation is None or annotation.type != 'type_annotation':
        return None
    if not annotation.named_children:
        return None
    type_node = annotation.named_children[0]
    if type_node.type == 'generic_type':
        base = type_node.child_by_field_name('name')
        type_node = base if base is not None else type_node.named_children[0]
    if type_node.type == 'nested_type_identifier':
        type_node = type_node.named_children[-1]
    if type_node.type == 'type_identifier':
        return node_text(type_node, source)
    return None


class TypeAnnotationIndex:
    """Declared types of names in one file, resolved on demand.

    A name's type is the first explicit single-type annotation found, in
    document order, on a constructor parameter, a class field or a variable
    declaration with that name.
    """

    def __init__(self, tree: Tree, source: bytes):
        self.tree = tree
        self.source = source
        self._resolved: Dict[str, Optional[str]] = {}

    def type_of(self, name: str) -> Optional[str]:
        if name not in self._resolved:
            self._resolved[name] = self._scan(name)
        return self._resolved[name]

    def _scan(self, name: str) -> Optional[str]:
        for node in walk(self.tree.root_node):
            annotation = None
            if node.type in PARAMETER_TYPES and self._in_constructor(node):
                pattern = node.child_by_field_name('pattern')
                if pattern is not None and pattern.type == 'identifier' and node_text(pattern, self.source) == name:
                    annotation = node.child_by_field_name('type')
            elif node.type == 'public_field_definition':
                field_name = node.child_by_field_name('name')
                if field_name is not None and node_text(field_name, self.source) == name:
                    annotation = node.child_by_field_name('type')
            elif node.type == 'variable_declarator':
                var_name = node.child_by_field_name('name')
                if var_name is not None and var_name.type == 'identifier' and node_text(var_name, self.source) == name:
                    annotation = node.child_by_field_name('type')
            else:
                continue

            type_name = _annotated_type_name(annotation, self.source)
            if type_name:
                return type_name
        return None

    def _in_constructor(self, parameter: Node) -> bool:
        parameters = parameter.parent
        if parameters is None or parameters.type != 'formal_parameters':
            return False
        method = parameters.parent
        if method is None or method.type != 'method_definition':
            return False
        method_name = method.child_by_field_name('name')
        return method_name is not None and node_text(method_name, self.source) == 'constructor'

    def receiver_type(self, receiver: Optional[Node]) -> Optional[str]:
        """Declared type of the object left of a dot.

        `this` is the enclosing class; `recv` and `this.recv` (or any
        `a.recv`) look up `recv`'s annotation. Everything else is unresolved.
        """
        if receiver is None:
            return None
        if receiver.type == 'this':
            owner = enclosing_class(receiver)
            return class_name(owner, self.source) if owner is not None else None
        if receiver.type == 'identifier':
            return self.type_of(node_text(receiver, self.source))
        if receiver.type == 'member_expression':
            prop = receiver.child_by_field_name('property')
            if prop is not None and prop.type == 'property_identifier':
                return self.type_of(node_text(prop, self.source))
        if receiver.type == 'non_null_expression' and receiver.named_children:
            return self.receiver_type(receiver.named_children[0])
        return None


def get_container_class_name(document: TextDocument, position: Position, tree: Optional[Tree] = None) -> Optional[str]:
    """Declared type of the receiver when the cursor is on `recv.symbol`."""
    if tree is None:
        tree = parse_document(document)
        if tree is None:
            return None
    symbol = symbol_at(document, position, tree)
    if symbol is None:
        return None
    receiver = member_receiver(symbol.node)
    if receiver is None:
        return None
    return TypeAnnotationIndex(tree, document.source).receiver_type(receiver)


class SymbolResolver:
    """Find declarations by name, same file first, then the workspace."""

    COMPONENT = 'SymbolResolver'

    def __init__(self, workspace: FileEnumerator, documents: DocumentProvider, log: OutputLog):
        self.workspace = workspace
        self.documents = documents
        self.log = log

    async def find_definition(self, document: TextDocument, position: Position) -> Optional[SymbolDefinition]:
        """Declaration of the symbol at `position`, or None.

        On `recv.symbol` with a resolvable receiver type, only methods and
        fields of that type match. The first match wins; candidates with the
        same name in other files are not ranked.
        """
        tree = parse_document(document)
        symbol = symbol_at(document, position, tree)
        if symbol is None:
            return None

        at_cursor = self._declaration_at(document, symbol)
        if at_cursor is not None:
            return at_cursor

        container = None
        if tree is not None:
            receiver = member_receiver(symbol.node)
            if receiver is not None:
                container = TypeAnnotationIndex(tree, document.source).receiver_type(receiver)

        local = self.find_definition_in_document(document, symbol.name, container, tree)
        if local is not None:
            return local

        files = await self.workspace.find_files(SOURCE_FILE_PATTERNS)
        for file_path in files:
            if file_path == document.path:
                continue
            try:
                candidate = await self.documents.open_document(file_path)
                definition = self.find_definition_in_document(candidate, symbol.name, container)
            except Exception as e:
                self.log.append_line(self.COMPONENT, f"Skipping {file_path}: {e}")
                continue
            if definition is not None:
                return definition

        return None

    def _declaration_at(self, document: TextDocument, symbol: CursorSymbol) -> Optional[SymbolDefinition]:
        """The declaration whose name the cursor is on, if it is one."""
        node = symbol.node
        parent = node.parent if node is not None else None
        if parent is None or not is_same_node(parent.child_by_field_name('name'), node):
            return None

        source = document.source
        if parent.type in TYPE_DECLARATION_TYPES:
            return self._make(document, parent, symbol.name, self._class_kind(parent, source))
        if parent.type in METHOD_TYPES:
            return self._make(document, parent, symbol.name, SymbolKind.METHOD, self._owner_name(parent, source))
        if parent.type in FIELD_TYPES:
            return self._make(document, parent, symbol.name, SymbolKind.FIELD, self._owner_name(parent, source))
        if parent.type in FUNCTION_TYPES:
            return self._make(document, parent, symbol.name, SymbolKind.FUNCTION)
        if parent.type == 'variable_declarator' and is_top_level_declarator(parent):
            return self._make(document, parent, symbol.name, SymbolKind.FIELD)
        return None

    def find_definition_in_document(
        self,
        document: TextDocument,
        name: str,
        container: Optional[str] = None,
        tree: Optional[Tree] = None,
    ) -> Optional[SymbolDefinition]:
        if tree is None:
            tree = parse_document(document)
            if tree is None:
                return None
        return next(self._declarations(document, tree, name, container), None)

    def _declarations(self, document: TextDocument, tree: Tree, name: str, container: Optional[str]) -> Iterator[SymbolDefinition]:
        """Matching declarations in pre-order. Non-matching nodes are still descended into."""
        source = document.source
        for node in walk(tree.root_node):
            node_type = node.type

            if node_type in TYPE_DECLARATION_TYPES:
                if class_name(node, source) == name:
                    yield self._make(document, node, name, self._class_kind(node, source))

            elif node_type in METHOD_TYPES or node_type in FIELD_TYPES:
                member_name = node.child_by_field_name('name')
                if member_name is None or node_text(member_name, source) != name:
                    continue
                owner = self._owner_name(node, source)
                if container is not None and owner != container:
                    continue
                kind = SymbolKind.METHOD if node_type in METHOD_TYPES else SymbolKind.FIELD
                yield self._make(document, node, name, kind, owner)

            elif node_type in FUNCTION_TYPES:
                function_name = node.child_by_field_name('name')
                if function_name is not None and node_text(function_name, source) == name:
                    yield self._make(document, node, name, SymbolKind.FUNCTION)

            elif node_type == 'variable_declarator':
                var_name = node.child_by_field_name('name')
                if (var_name is not None and var_name.type == 'identifier'
                        and node_text(var_name, source) == name
                        and is_top_level_declarator(node)):
                    yield self._make(document, node, name, SymbolKind.FIELD)

    @staticmethod
    def _class_kind(node: Node, source: bytes) -> SymbolKind:
        kind = SymbolKind.CLASS
        if node.type in ('class_declaration', 'abstract_class_declaration'):
            for decorator in class_decorators(node):
                kind = DECORATOR_KINDS.get(decorator_name(decorator, source), kind)
        return kind

    @staticmethod
    def _owner_name(member: Node, source: bytes) -> Optional[str]:
        """Name of the class or interface declaring a method or field."""
        body = member.parent
        owner = body.parent if body is not None else None
        if owner is None or owner.type not in TYPE_DECLARATION_TYPES:
            return None
        return class_name(owner, source)

    @staticmethod
    def _make(document: TextDocument, node: Node, name: str, kind: SymbolKind,
              container: Optional[str] = None) -> SymbolDefinition:
        return SymbolDefinition(
            name=name,
            file_path=document.path,
            range=document.range_of(node.start_byte, node.end_byte),
            kind=kind,
            container_name=container,
        )
