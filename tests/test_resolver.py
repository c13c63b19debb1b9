"""
Tests for definition lookup and receiver type inference.
"""
import asyncio

import pytest

from nest_scope.analyzer.models import Position, SymbolKind
from nest_scope.analyzer.parser import parse_document
from nest_scope.analyzer.resolver import (
    SymbolResolver,
    TypeAnnotationIndex,
    get_container_class_name,
    symbol_at,
)
from nest_scope.analyzer.workspace import FileSystemWorkspace, TextDocument

from conftest import FailingDocuments, document_for, locate

REPOSITORIES = '''
export class UserRepository {
  save(entity: object) {
    return entity;
  }
}

export class OrderRepository {
  save(entity: object) {
    return entity;
  }
}

export interface Auditable {
  save(): void;
}

export function createRepository() {
  return new UserRepository();
}

export const DEFAULT_LIMIT = 20;

function paginate() {
  const pageSize = 10;
  return pageSize;
}
'''

CONSUMER = '''
import { UserRepository, OrderRepository } from './repositories';

export class Checkout {
  private readonly audit: OrderRepository;
  private cache!: Map<string, UserRepository>;

  constructor(private readonly users: UserRepository, orders: OrderRepository) {}

  run(client: any) {
    const repo: UserRepository = createRepository();
    this.users.save({});
    this.audit.save({});
    repo.save({});
    client.save({});
    this.run(null);
    return DEFAULT_LIMIT;
  }
}
'''


@pytest.fixture
def repo_workspace(make_workspace):
    return make_workspace({
        'src/repositories.ts': REPOSITORIES,
        'src/checkout.ts': CONSUMER,
    })


def _resolver(root, log):
    workspace = FileSystemWorkspace(root)
    return SymbolResolver(workspace, workspace, log)


def _find(root, log, relative, needle, nth=1, offset=0):
    path = root / relative
    line, character = locate(path, needle, nth, offset)
    return asyncio.run(
        _resolver(root, log).find_definition(document_for(path), Position(line, character))
    )


class TestFindDefinition:

    def test_method_through_constructor_parameter(self, repo_workspace, log):
        definition = _find(repo_workspace, log, 'src/checkout.ts', 'this.users.save', offset=11)

        assert definition is not None
        assert definition.kind is SymbolKind.METHOD
        assert definition.container_name == 'UserRepository'
        assert definition.file_path.endswith('repositories.ts')
        assert definition.range.start.line == 1

    def test_method_through_field_annotation(self, repo_workspace, log):
        definition = _find(repo_workspace, log, 'src/checkout.ts', 'this.audit.save', offset=11)

        assert definition.container_name == 'OrderRepository'
        assert definition.range.start.line == 7

    def test_method_through_local_variable(self, repo_workspace, log):
        definition = _find(repo_workspace, log, 'src/checkout.ts', 'repo.save', offset=5)
        assert definition.container_name == 'UserRepository'

    def test_this_resolves_to_enclosing_class(self, repo_workspace, log):
        definition = _find(repo_workspace, log, 'src/checkout.ts', 'this.run', offset=5)

        assert definition.kind is SymbolKind.METHOD
        assert definition.container_name == 'Checkout'
        assert definition.file_path.endswith('checkout.ts')

    def test_unannotated_receiver_takes_first_candidate(self, repo_workspace, log):
        definition = _find(repo_workspace, log, 'src/checkout.ts', 'client.save', offset=7)

        assert definition is not None
        assert definition.container_name == 'UserRepository'

    def test_class_reference(self, repo_workspace, log):
        definition = _find(repo_workspace, log, 'src/checkout.ts', 'users: UserRepository', offset=7)

        assert definition.kind is SymbolKind.CLASS
        assert definition.name == 'UserRepository'
        assert definition.container_name is None

    def test_function_and_top_level_constant(self, repo_workspace, log):
        function = _find(repo_workspace, log, 'src/checkout.ts', 'createRepository')
        constant = _find(repo_workspace, log, 'src/checkout.ts', 'DEFAULT_LIMIT')

        assert function.kind is SymbolKind.FUNCTION
        assert constant.kind is SymbolKind.FIELD
        assert constant.file_path.endswith('repositories.ts')

    def test_local_variable_is_not_a_definition(self, make_workspace, log):
        root = make_workspace({'a.ts': "function f() {\n  const local = 1;\n  return local;\n}\n"})
        assert _find(root, log, 'a.ts', 'return local', offset=7) is None

    def test_cursor_on_declaration_returns_it(self, repo_workspace, log):
        definition = _find(repo_workspace, log, 'src/repositories.ts', 'save', nth=2)

        assert definition.container_name == 'OrderRepository'
        assert definition.range.start.line == 7

    def test_interface_method_signature(self, repo_workspace, log):
        definition = _find(repo_workspace, log, 'src/repositories.ts', 'save(): void')
        assert definition.container_name == 'Auditable'
        assert definition.kind is SymbolKind.METHOD

    def test_cursor_on_whitespace(self, repo_workspace, log):
        path = repo_workspace / 'src/checkout.ts'
        resolver = _resolver(repo_workspace, log)
        assert asyncio.run(resolver.find_definition(document_for(path), Position(1, 0))) is None

    def test_unknown_name(self, make_workspace, log):
        root = make_workspace({'a.ts': "missingThing();\n"})
        assert _find(root, log, 'a.ts', 'missingThing') is None

    def test_workspace_scan_skips_file_that_fails(self, make_workspace, log):
        root = make_workspace({
            'a.ts': "helper();\n",
            'b.ts': "export function helper() {}\n",
            'c.ts': "export function helper() { return 1; }\n",
        })
        workspace = FileSystemWorkspace(root)
        resolver = SymbolResolver(workspace, FailingDocuments(workspace, 'b.ts'), log)
        path = root / 'a.ts'

        definition = asyncio.run(resolver.find_definition(document_for(path), Position(0, 0)))

        assert definition.file_path.endswith('c.ts')
        assert log.find('provider crashed on b.ts')


class TestDecoratedKinds:

    @pytest.mark.parametrize('decorator, kind', [
        ('@Injectable()', SymbolKind.INJECTABLE),
        ('@Controller(\'users\')', SymbolKind.CONTROLLER),
        ('@Module({})', SymbolKind.MODULE),
        ('', SymbolKind.CLASS),
    ])
    def test_decorator_sets_kind(self, make_workspace, log, decorator, kind):
        root = make_workspace({'thing.ts': f"{decorator}\nexport class Thing {{}}\n"})
        assert _find(root, log, 'thing.ts', 'Thing').kind is kind


class TestFindInDocument:

    def test_container_filter(self, log):
        document = TextDocument('/w/repositories.ts', REPOSITORIES)
        resolver = SymbolResolver(None, None, log)

        found = resolver.find_definition_in_document(document, 'save', 'OrderRepository')
        assert found.container_name == 'OrderRepository'
        assert resolver.find_definition_in_document(document, 'save', 'Nope') is None

    def test_without_container_first_declaration_wins(self, log):
        document = TextDocument('/w/repositories.ts', REPOSITORIES)
        found = SymbolResolver(None, None, log).find_definition_in_document(document, 'save')
        assert found.container_name == 'UserRepository'


class TestTypeInference:

    def _index(self):
        document = TextDocument('/w/checkout.ts', CONSUMER)
        return TypeAnnotationIndex(parse_document(document), document.source)

    def test_type_of_names(self):
        index = self._index()

        assert index.type_of('users') == 'UserRepository'
        assert index.type_of('orders') == 'OrderRepository'
        assert index.type_of('audit') == 'OrderRepository'
        assert index.type_of('repo') == 'UserRepository'
        assert index.type_of('cache') == 'Map', "Generic annotations resolve to their base name"
        assert index.type_of('client') is None, "Method parameters are not indexed"
        assert index.type_of('unknown') is None

    def test_namespaced_annotation(self):
        document = TextDocument('/w/a.ts', "const repo: db.UserRepository = make();\n")
        index = TypeAnnotationIndex(parse_document(document), document.source)
        assert index.type_of('repo') == 'UserRepository'

    def test_union_annotation_is_unresolved(self):
        document = TextDocument('/w/a.ts', "const repo: A | B = make();\n")
        index = TypeAnnotationIndex(parse_document(document), document.source)
        assert index.type_of('repo') is None

    def test_container_class_name(self, repo_workspace):
        path = repo_workspace / 'src/checkout.ts'
        document = document_for(path)

        line, character = locate(path, 'this.users.save', offset=11)
        assert get_container_class_name(document, Position(line, character)) == 'UserRepository'

        line, character = locate(path, 'client.save', offset=7)
        assert get_container_class_name(document, Position(line, character)) is None

        line, character = locate(path, 'DEFAULT_LIMIT')
        assert get_container_class_name(document, Position(line, character)) is None


def test_symbol_at_word_end():
    document = TextDocument('/w/a.ts', "const total = 1;\n")
    symbol = symbol_at(document, Position(0, 11), parse_document(document))

    assert symbol.name == 'total'
    assert symbol.node is not None
    assert not symbol.is_property_access
