"""Tree-sitter parser for TypeScript sources and syntax-tree helpers."""
from pathlib import Path
from typing import Dict, Iterator, List, Optional
from tree_sitter import Language, Node, Parser, Tree
import tree_sitter_typescript as tstypescript


# Node types that carry a name the usage search compares against
IDENTIFIER_TYPES = frozenset({
    'identifier',
    'property_identifier',
    'type_identifier',
    'shorthand_property_identifier',
    'shorthand_property_identifier_pattern',
})

CLASS_TYPES = frozenset({'class_declaration', 'abstract_class_declaration', 'class'})
TYPE_DECLARATION_TYPES = CLASS_TYPES | {
    'interface_declaration', 'type_alias_declaration', 'enum_declaration',
}
FUNCTION_TYPES = frozenset({'function_declaration', 'generator_function_declaration'})
METHOD_TYPES = frozenset({'method_definition', 'method_signature', 'abstract_method_signature'})
FIELD_TYPES = frozenset({'public_field_definition', 'property_signature'})
PARAMETER_TYPES = frozenset({'required_parameter', 'optional_parameter'})
VARIABLE_DECLARATION_TYPES = frozenset({'lexical_declaration', 'variable_declaration'})


class LanguageParser:
    """TypeScript/TSX parser using the tree-sitter v0.22+ API."""

    SUPPORTED_LANGUAGES = {
        '.ts': 'typescript',
        '.tsx': 'tsx',
    }

    _instances: Dict[str, 'LanguageParser'] = {}

    def __init__(self, language: str):
        """Initialize parser for given language.

        Args:
            language: One of 'typescript', 'tsx'

        Raises:
            ValueError: If language is not supported
        """
        self.language = language
        self.parser = self._create_parser()

    def _create_parser(self) -> Parser:
        """Factory method using the Parser(Language(capsule)) API.

        Raises:
            ValueError: If language is not supported
        """
        if self.language == 'typescript':
            lang = Language(tstypescript.language_typescript())
        elif self.language == 'tsx':
            lang = Language(tstypescript.language_tsx())
        else:
            raise ValueError(f"Unsupported language: {self.language}")

        return Parser(lang)

    def parse_source(self, source_code: bytes) -> Tree:
        """Parse in-memory source. Malformed input yields ERROR nodes, never raises."""
        return self.parser.parse(source_code)

    @classmethod
    def from_file_extension(cls, file_path: str | Path) -> Optional['LanguageParser']:
        """Return the shared parser for a file's extension.

        Returns:
            LanguageParser instance, or None if extension not supported
        """
        language = cls.SUPPORTED_LANGUAGES.get(Path(file_path).suffix.lower())
        if not language:
            return None
        if language not in cls._instances:
            cls._instances[language] = cls(language)
        return cls._instances[language]


def node_text(node: Node, source: bytes) -> str:
    return source[node.start_byte:node.end_byte].decode('utf-8', errors='replace')


def walk(node: Node) -> Iterator[Node]:
    """Pre-order, depth-first traversal of named nodes."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.named_children))


def is_same_node(a: Optional[Node], b: Optional[Node]) -> bool:
    return (
        a is not None and b is not None
        and a.start_byte == b.start_byte
        and a.end_byte == b.end_byte
        and a.type == b.type
    )


def enclosing_class(node: Node) -> Optional[Node]:
    """Nearest class declaration containing `node`."""
    current = node.parent
    while current is not None:
        if current.type in CLASS_TYPES:
            return current
        current = current.parent
    return None


def class_name(class_node: Node, source: bytes) -> Optional[str]:
    name_node = class_node.child_by_field_name('name')
    return node_text(name_node, source) if name_node else None


def class_decorators(class_node: Node) -> List[Node]:
    """Decorators applied to a class.

    `@Module({...}) export class X {}` attaches the decorator to the export
    statement, so the parent's decorators are included.
    """
    decorators = [child for child in class_node.children if child.type == 'decorator']
    parent = class_node.parent
    if parent is not None and parent.type == 'export_statement':
        decorators = [child for child in parent.children if child.type == 'decorator'] + decorators
    return decorators


def decorator_name(decorator: Node, source: bytes) -> Optional[str]:
    """Name of `@Name(...)` or `@Name`; None for other decorator shapes."""
    if not decorator.named_children:
        return None
    expression = decorator.named_children[0]
    if expression.type == 'call_expression':
        expression = expression.child_by_field_name('function')
    if expression is not None and expression.type == 'identifier':
        return node_text(expression, source)
    return None


def decorator_arguments(decorator: Node) -> List[Node]:
    """Named argument nodes of a call-style decorator."""
    for child in decorator.named_children:
        if child.type == 'call_expression':
            arguments = child.child_by_field_name('arguments')
            return list(arguments.named_children) if arguments is not None else []
    return []


def is_top_level_declarator(declarator: Node) -> bool:
    """True for `const x = ...` directly in the program or an export statement."""
    declaration = declarator.parent
    if declaration is None or declaration.type not in VARIABLE_DECLARATION_TYPES:
        return False
    owner = declaration.parent
    if owner is not None and owner.type == 'export_statement':
        owner = owner.parent
    return owner is not None and owner.type == 'program'


def identifier_at(tree: Tree, start_byte: int, end_byte: int) -> Optional[Node]:
    """The identifier-like node spanning exactly the given byte range."""
    node = tree.root_node.descendant_for_byte_range(start_byte, end_byte)
    while node is not None and node.type not in IDENTIFIER_TYPES:
        if node.start_byte != start_byte or node.end_byte != end_byte:
            return None
        node = node.parent
    if node is None or node.start_byte != start_byte or node.end_byte != end_byte:
        return None
    return node


def parse_document(document) -> Optional[Tree]:
    """Parse a TextDocument with the grammar matching its extension.

    Returns:
        Parsed Tree, or None for files that are not TypeScript
    """
    parser = LanguageParser.from_file_extension(document.path)
    if parser is None:
        return None
    return parser.parse_source(document.source)
