"""
Tests for @Module() extraction and the module visibility graph.
"""
import asyncio
import os

import pytest

from nest_scope.analyzer.models import NestModule
from nest_scope.analyzer.module_graph import (
    ModuleGraph,
    ModuleGraphBuilder,
    file_name_to_class_name,
)
from nest_scope.analyzer.workspace import FileSystemWorkspace, TextDocument

from conftest import FailingDocuments


def _builder(root, log):
    workspace = FileSystemWorkspace(root)
    return ModuleGraphBuilder(workspace, workspace, log)


def _extract(source, log, path='/w/src/app.module.ts'):
    builder = ModuleGraphBuilder(None, None, log)
    return builder.extract_module(TextDocument(path, source))


class TestExtractModule:

    def test_reads_metadata_arrays(self, log):
        module = _extract("""
            @Module({
              imports: [UserModule, forwardRef(() => AuthModule), ConfigModule.forRoot()],
              exports: [UserService],
              providers: [UserService, { provide: 'TOKEN', useValue: 1 }],
              controllers: [UserController],
            })
            export class UserModule {}
        """, log)

        assert module is not None
        assert module.name == 'UserModule'
        assert module.imports == ('UserModule',), "Only bare identifiers are imports"
        assert module.exports == ('UserService',)
        assert module.providers == ('UserService',)
        assert module.controllers == ('UserController',)

    def test_missing_properties_are_empty(self, log):
        module = _extract("@Module({})\nexport class EmptyModule {}\n", log)

        assert module.name == 'EmptyModule'
        assert module.imports == ()
        assert module.providers == ()

    def test_quoted_keys(self, log):
        module = _extract("@Module({ 'providers': [A] })\nclass QuotedModule {}\n", log)
        assert module.providers == ('A',)

    def test_decorator_without_object_is_ignored(self, log):
        assert _extract("@Module()\nexport class Bare {}\n", log) is None

    def test_other_decorators_are_ignored(self, log):
        assert _extract("@Injectable()\nexport class NotAModule {}\n", log) is None

    def test_first_module_class_wins(self, log):
        module = _extract("""
            @Module({ providers: [A] })
            export class FirstModule {}

            @Module({ providers: [B] })
            export class SecondModule {}
        """, log)
        assert module.name == 'FirstModule'


class TestModuleGraph:
    """Visibility relations over hand-built modules."""

    def _graph(self):
        return ModuleGraph([
            NestModule('AModule', '/w/src/a/a.module.ts', imports=('BModule',)),
            NestModule('BModule', '/w/src/b/b.module.ts', imports=('CModule', 'GhostModule')),
            NestModule('CModule', '/w/src/c/c.module.ts'),
        ])

    def test_imported_by_mirrors_imports(self):
        graph = self._graph()
        for name, node in graph.items():
            for imported in node.imports:
                if imported in graph:
                    assert name in graph[imported].imported_by

        assert graph['CModule'].imported_by == frozenset({'BModule'})
        assert graph['AModule'].imported_by == frozenset()

    def test_dangling_import_kept_without_edge(self):
        graph = self._graph()

        assert 'GhostModule' in graph['BModule'].imports
        assert 'GhostModule' not in graph
        assert not graph.digraph.has_node('GhostModule')

    def test_accessibility_is_one_hop(self):
        graph = self._graph()

        assert graph.get_accessible_modules('CModule') == {'CModule', 'BModule'}
        assert graph.get_accessible_modules('AModule') == {'AModule'}

    def test_unknown_module_sees_only_itself(self):
        assert self._graph().get_accessible_modules('Nope') == {'Nope'}

    def test_accessible_files_are_module_files(self):
        assert self._graph().get_accessible_files('CModule') == {
            '/w/src/b/b.module.ts',
            '/w/src/c/c.module.ts',
        }

    def test_digraph_is_frozen(self):
        graph = self._graph()
        with pytest.raises(Exception):
            graph.digraph.add_node('Other')


class TestGetModuleForFile:

    def _graph(self):
        return ModuleGraph([
            NestModule('AppModule', '/w/src/app.module.ts', providers=('AppService',)),
            NestModule('UserModule', '/w/src/user/user.module.ts',
                       providers=('UserService',), controllers=('UserController',)),
            NestModule('AdminModule', '/w/src/user/admin/admin.module.ts'),
        ])

    def test_module_file_maps_to_itself(self):
        assert self._graph().get_module_for_file('/w/src/user/user.module.ts').name == 'UserModule'

    def test_provider_file_name_heuristic(self):
        graph = self._graph()
        assert graph.get_module_for_file('/w/src/user/user.service.ts').name == 'UserModule'
        assert graph.get_module_for_file('/w/src/user/user.controller.ts').name == 'UserModule'

    def test_heuristic_beats_deeper_directory(self):
        """A provider listed by a shallower module wins over directory depth."""
        graph = self._graph()
        assert graph.get_module_for_file('/w/src/user/admin/user-service.ts').name == 'UserModule'

    def test_directory_fallback_prefers_deepest(self):
        graph = self._graph()
        assert graph.get_module_for_file('/w/src/user/admin/helpers.ts').name == 'AdminModule'
        assert graph.get_module_for_file('/w/src/user/dto/create-user.dto.ts').name == 'UserModule'
        assert graph.get_module_for_file('/w/src/main.ts').name == 'AppModule'

    def test_outside_every_module(self):
        assert self._graph().get_module_for_file('/w/scripts/seed.ts') is None

    def test_sibling_prefix_directory_is_not_contained(self):
        """/w/src/user-extra is not inside /w/src/user."""
        graph = ModuleGraph([NestModule('UserModule', '/w/src/user/user.module.ts')])
        assert graph.get_module_for_file('/w/src/user-extra/thing.ts') is None


class TestBuildGraph:

    def test_builds_from_workspace(self, nest_project, log):
        graph = asyncio.run(_builder(nest_project, log).build_graph())

        assert set(graph) == {'AppModule', 'UserModule', 'BillingModule'}, \
            "Modules under node_modules must be skipped"
        assert graph['UserModule'].imported_by == frozenset({'AppModule'})
        assert graph['UserModule'].module.providers == ('UserService',)
        assert graph.module_directory('UserModule') == os.path.join(str(nest_project), 'src', 'user')
        assert log.find('Built module graph with 3 modules')

    def test_unreadable_module_file_is_skipped(self, make_workspace, log):
        root = make_workspace({
            'src/good.module.ts': "@Module({})\nexport class GoodModule {}\n",
        })
        (root / 'src' / 'bad.module.ts').write_bytes(b'\xff\xfe\x00bad')

        graph = asyncio.run(_builder(root, log).build_graph())

        assert list(graph) == ['GoodModule']
        assert log.find('Error parsing module')

    def test_provider_error_skips_only_that_module(self, make_workspace, log):
        root = make_workspace({
            'src/good.module.ts': "@Module({})\nexport class GoodModule {}\n",
            'src/broken.module.ts': "@Module({})\nexport class BrokenModule {}\n",
        })
        workspace = FileSystemWorkspace(root)
        builder = ModuleGraphBuilder(workspace, FailingDocuments(workspace, 'broken.module.ts'), log)

        graph = asyncio.run(builder.build_graph())

        assert list(graph) == ['GoodModule']
        assert log.find('provider crashed on broken.module.ts')

    def test_duplicate_name_later_file_wins(self, make_workspace, log):
        root = make_workspace({
            'a/shared.module.ts': "@Module({ providers: [A] })\nexport class SharedModule {}\n",
            'b/shared.module.ts': "@Module({ providers: [B] })\nexport class SharedModule {}\n",
        })

        graph = asyncio.run(_builder(root, log).build_graph())

        assert graph['SharedModule'].module.providers == ('B',)
        assert log.find('Duplicate module SharedModule')

    def test_empty_workspace(self, tmp_path, log):
        graph = asyncio.run(_builder(tmp_path, log).build_graph())
        assert len(graph) == 0


@pytest.mark.parametrize('path, expected', [
    ('/w/user.service.ts', 'UserService'),
    ('/w/user-profile.controller.ts', 'UserProfileController'),
    ('/w/auth_guard.ts', 'AuthGuard'),
    ('/w/app.module.ts', 'AppModule'),
])
def test_file_name_to_class_name(path, expected):
    assert file_name_to_class_name(path) == expected
