"""Shared fixtures: throwaway TypeScript workspaces on disk."""
import textwrap
from pathlib import Path
from typing import Dict

import pytest

from nest_scope.analyzer.nest_analyzer import NestAnalyzer
from nest_scope.analyzer.workspace import FileSystemWorkspace, TextDocument
from nest_scope.utils.logger import OutputLog


NEST_PROJECT = {
    'src/app/app.module.ts': """
        import { Module } from '@nestjs/common';
        import { UserModule } from '../user/user.module';
        import { AppController } from './app.controller';

        @Module({
          imports: [UserModule],
          controllers: [AppController],
        })
        export class AppModule {}
    """,
    'src/app/app.controller.ts': """
        import { Controller, Get } from '@nestjs/common';
        import { UserService } from '../user/user.service';

        @Controller()
        export class AppController {
          constructor(private readonly userService: UserService) {}

          @Get()
          home() {
            return this.userService.findAll();
          }
        }
    """,
    'src/user/user.module.ts': """
        import { Module } from '@nestjs/common';
        import { UserController } from './user.controller';
        import { UserService } from './user.service';

        @Module({
          controllers: [UserController],
          providers: [UserService],
          exports: [UserService],
        })
        export class UserModule {}
    """,
    'src/user/user.service.ts': """
        import { Injectable } from '@nestjs/common';

        @Injectable()
        export class UserService {
          private readonly users: string[] = [];

          findAll(): string[] {
            return this.users;
          }

          create(name: string) {
            this.users.push(name);
            return this.findAll();
          }
        }
    """,
    'src/user/user.controller.ts': """
        import { Controller, Get, Post } from '@nestjs/common';
        import { UserService } from './user.service';

        @Controller('users')
        export class UserController {
          constructor(private readonly userService: UserService) {}

          @Get()
          findAll() {
            return this.userService.findAll();
          }

          @Post()
          create() {
            return this.userService.create('ada');
          }
        }
    """,
    'src/billing/billing.module.ts': """
        import { Module } from '@nestjs/common';
        import { BillingService } from './billing.service';

        @Module({
          providers: [BillingService],
        })
        export class BillingModule {}
    """,
    'src/billing/billing.service.ts': """
        import { Injectable } from '@nestjs/common';
        import { UserService } from '../user/user.service';

        @Injectable()
        export class BillingService {
          constructor(private readonly userService: UserService) {}

          charge() {
            return this.userService.findAll();
          }
        }
    """,
    'node_modules/@nestjs/common/index.module.ts': """
        @Module({ imports: [] })
        export class VendoredModule {}
    """,
}


def write_workspace(root: Path, files: Dict[str, str]) -> Path:
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(textwrap.dedent(content).lstrip('\n'), encoding='utf-8')
    return root.resolve()


def locate(path: Path, needle: str, nth: int = 1, offset: int = 0):
    """Zero-based (line, character) of the nth occurrence of `needle`, plus `offset`."""
    seen = 0
    for line_number, line in enumerate(path.read_text(encoding='utf-8').splitlines()):
        start = line.find(needle)
        while start != -1:
            seen += 1
            if seen == nth:
                return line_number, start + offset
            start = line.find(needle, start + 1)
    raise AssertionError(f"{needle!r} occurrence {nth} not found in {path}")


class FailingDocuments:
    """Document provider that raises an arbitrary error for one file name."""

    def __init__(self, workspace, failing_name):
        self.workspace = workspace
        self.failing_name = failing_name

    async def open_document(self, path):
        if path.endswith(self.failing_name):
            raise RuntimeError(f"provider crashed on {self.failing_name}")
        return await self.workspace.open_document(path)


def document_for(path: Path) -> TextDocument:
    return TextDocument(str(path.resolve()), path.read_text(encoding='utf-8'))


@pytest.fixture
def make_workspace(tmp_path):
    """Write files under a fresh directory and return its resolved root."""
    def _make(files: Dict[str, str]) -> Path:
        return write_workspace(tmp_path, files)
    return _make


@pytest.fixture
def nest_project(tmp_path) -> Path:
    """AppModule imports UserModule; BillingModule stands alone."""
    return write_workspace(tmp_path, NEST_PROJECT)


@pytest.fixture
def log() -> OutputLog:
    return OutputLog()


@pytest.fixture
def analyzer(nest_project, log) -> NestAnalyzer:
    return NestAnalyzer(FileSystemWorkspace(nest_project), log=log)
