"""Pytest configuration and fixtures."""

import os
import stat
from pathlib import Path

import pytest

from cityscan.correlation.patterns import default_catalog
from cityscan.driver.tempdirs import TempDirRegistry
from cityscan.mappers.base import MapperContext


@pytest.fixture
def project(tmp_path):
    """Minimal polyglot project tree."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("import os\n\n\ndef main():\n    return os.getcwd()\n")
    (root / "src" / "a.ts").write_text("const unused = 1;\n")
    (root / "node_modules" / "lodash").mkdir(parents=True)
    (root / "node_modules" / "lodash" / "index.js").write_text("module.exports = {};\n")
    (root / "package.json").write_text('{"name": "demo", "version": "1.0.0"}\n')
    (root / "requirements.txt").write_text("requests==2.19.0\n")
    return root


@pytest.fixture
def empty_project(tmp_path):
    """Project with no sources and no manifests."""
    root = tmp_path / "empty"
    root.mkdir()
    return root


@pytest.fixture
def ctx(tmp_path):
    """MapperContext rooted at a fixed absolute path."""
    return MapperContext(project_root=str(tmp_path / "project"), tool_version="1.0.0", catalog=default_catalog())


@pytest.fixture
def registry():
    """Isolated scratch-dir registry."""
    reg = TempDirRegistry()
    yield reg
    reg.cleanup_all()


@pytest.fixture
def fake_tool(tmp_path):
    """Factory writing an executable ``#!/bin/sh`` script and returning its absolute path."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(name: str, body: str) -> str:
        path = bin_dir / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


@pytest.fixture
def fake_path(tmp_path, monkeypatch):
    """Prepend the fake tool directory to PATH so bare names resolve to fakes."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    return Path(bin_dir)
