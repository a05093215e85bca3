"""Tests for the analyzer orchestrator and adapters, with the spawn primitive faked."""

import asyncio
import json
from pathlib import Path

import pytest

from cityscan.adapters import ADAPTERS, CbmcAdapter
from cityscan.adapters.base import AdapterCapabilities
from cityscan.config_runtime import DEFAULTS
from cityscan.driver.kernel import CancelToken, RunResult
from cityscan.driver.tempdirs import REGISTRY
from cityscan.errors import ToolUnavailableError, UnsafeArgumentError
from cityscan.inventory import scan_project
from cityscan.mappers.base import MapperContext
from cityscan.orchestrator import AnalyzerContext, analyze, default_tool_set, detect_languages, scan_package

MYPY_OUTPUT = "src/app.py:5:12: error: Incompatible return value type  [return-value]\n"


class FakeTools:
    """Stand-in for kernel.run / kernel.probe_version keyed by executable name."""

    def __init__(self, outputs=None, missing=(), delay=0.0):
        self.outputs = outputs or {}
        self.missing = set(missing)
        self.delay = delay
        self.calls = []
        self.active = 0
        self.peak = 0

    async def probe(self, executable, args=("--version",), timeout=5.0, cwd=None):
        if executable in self.missing:
            raise ToolUnavailableError(f"Executable not found on PATH: {executable}", {"executable": executable})
        return f"{executable} 1.0.0"

    async def run(self, executable, args=(), opts=None):
        self.calls.append((executable, list(args), opts))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            output = self.outputs.get(executable, RunResult(0, "", ""))
            return output(args, opts) if callable(output) else output
        finally:
            self.active -= 1


def _pylint_run(args, opts):
    report = Path(args[0].split(":", 1)[1].rsplit(",", 1)[0])
    report.write_text(json.dumps([{
        "type": "convention", "module": "app", "obj": "", "line": 1, "column": 0,
        "path": "src/app.py", "symbol": "missing-module-docstring",
        "message": "Missing module docstring", "message-id": "C0114",
    }]))
    return RunResult(16, "Your code has been rated at 9.00/10\n", "")


def _context(project, tools, **options):
    return AnalyzerContext.from_project(str(project), run=tools.run, probe=tools.probe, **options)


class TestDetection:
    def test_languages(self, project):
        inventory = scan_project(project, skip_dirs=DEFAULTS["paths"]["skip_dirs"])
        assert detect_languages(inventory) == ["javascript", "python", "typescript"]
        assert "node_modules/lodash/index.js" not in inventory.files

    def test_default_tool_set(self, project):
        inventory = scan_project(project, skip_dirs=DEFAULTS["paths"]["skip_dirs"])
        tools = default_tool_set(inventory)
        assert {"eslint", "madge", "mypy", "npm-audit", "osv-scanner", "pylint", "bandit"} <= set(tools)
        assert not {"cbmc", "gosec", "cargo-audit"} & set(tools)
        assert tools == sorted(tools)

    def test_empty_project(self, empty_project):
        inventory = scan_project(empty_project)
        assert detect_languages(inventory) == []
        assert default_tool_set(inventory) == []

    def test_inventory_limits(self, tmp_path):
        for n in range(5):
            (tmp_path / f"m{n}.py").write_text("x = 1\n")
        (tmp_path / "big.py").write_text("#" * 200)
        inventory = scan_project(tmp_path, max_files=3, max_file_size=100)
        assert inventory.truncated
        assert len(inventory.files) == 3
        assert "big.py" not in inventory.files

    def test_missing_project(self, tmp_path):
        with pytest.raises(ValueError):
            AnalyzerContext.from_project(str(tmp_path / "nope"))


class TestAnalyze:
    async def test_runs_selected_tools(self, project):
        tools = FakeTools({"pylint": _pylint_run, "mypy": RunResult(1, MYPY_OUTPUT, "")})
        results = await analyze(str(project), ["pylint", "mypy"], _context(project, tools))
        assert [r.tool for r in results] == ["mypy", "pylint"]
        mypy, pylint = results
        assert mypy.issues[0].rule_id == "return-value"
        assert mypy.metadata["exitCode"] == 1
        assert mypy.metadata["toolVersion"] == "mypy 1.0.0"
        assert pylint.issues[0].rule_id == "C0114"
        assert pylint.metadata["score"] == 9.0
        assert mypy.issues[0].entity.id == pylint.issues[0].entity.id
        assert all("validation" in r.metadata for r in results)
        assert REGISTRY.live() == []

    async def test_missing_tool_is_skipped(self, project):
        tools = FakeTools({"mypy": RunResult(0, "", "")}, missing={"bandit"})
        results = await analyze(str(project), ["bandit", "mypy"], _context(project, tools))
        bandit = results[0]
        assert bandit.skipped
        assert bandit.success
        assert "not found" in bandit.metadata["reason"]
        assert results[1].success
        assert [c[0] for c in tools.calls] == ["mypy"]

    async def test_failing_tool_does_not_stop_others(self, project):
        tools = FakeTools({
            "eslint": RunResult(2, "", "Oops! Something went wrong"),
            "madge": RunResult(0, "[]", ""),
        })
        eslint, madge = await analyze(str(project), ["eslint", "madge"], _context(project, tools))
        assert not eslint.success
        assert eslint.metadata["error"]["type"] == "parse"
        assert eslint.metadata["error"]["metadata"]["exitCode"] == 2
        assert madge.success

    async def test_timeout_becomes_error(self, project):
        tools = FakeTools({"npm": RunResult(None, "", "", timed_out=True, killed=True, duration=120.0)})
        (result,) = await analyze(str(project), ["npm-audit"], _context(project, tools))
        assert not result.success
        assert result.metadata["error"]["type"] == "timeout"

    async def test_unparseable_output(self, project):
        tools = FakeTools({"npm": RunResult(1, "this is not json", "")})
        (result,) = await analyze(str(project), ["npm-audit"], _context(project, tools))
        assert result.metadata["error"]["type"] == "parse"
        assert result.metadata["exitCode"] == 1

    async def test_unknown_tool(self, project):
        with pytest.raises(ValueError):
            await analyze(str(project), ["pylint", "nonsense"], _context(project, FakeTools()))

    async def test_empty_project_no_tools(self, empty_project):
        assert await analyze(str(empty_project), context=_context(empty_project, FakeTools())) == []

    async def test_empty_project_explicit_tool(self, empty_project):
        """No sources and no manifests yields an empty successful Result."""
        tools = FakeTools({"madge": RunResult(0, "[]", "")})
        (result,) = await analyze(str(empty_project), ["madge"], _context(empty_project, tools))
        assert result.success
        assert result.issues == ()
        assert "error" not in result.metadata

    async def test_concurrency_limit(self, project):
        tools = FakeTools({name: RunResult(0, "[]", "") for name in ("eslint", "madge")}, delay=0.05)
        await analyze(str(project), ["eslint", "madge"], _context(project, tools, concurrency=1))
        assert tools.peak == 1

    async def test_cancelled_before_start(self, project):
        token = CancelToken()
        token.cancel()
        tools = FakeTools()
        results = await analyze(str(project), ["eslint", "madge"], _context(project, tools, cancel_token=token))
        assert all(r.metadata["cancelled"] for r in results)
        assert tools.calls == []

    async def test_adapter_receives_scrubbed_options(self, project):
        tools = FakeTools({"pylint": _pylint_run})
        await analyze(str(project), ["pylint"], _context(project, tools))
        executable, args, opts = tools.calls[0]
        assert opts.cwd == str(Path(project).resolve())
        assert opts.env["PYTHONPATH"] == ""
        assert opts.timeout == DEFAULTS["timeouts"]["static"]
        assert args[-1] == "."

    async def test_project_config_file(self, project):
        (project / ".cityscan").mkdir()
        (project / ".cityscan" / "config.json").write_text(json.dumps({"timeouts": {"dependency": 7}}))
        tools = FakeTools({"npm": RunResult(0, '{"vulnerabilities": {}}', "")})
        await analyze(str(project), ["npm-audit"], _context(project, tools))
        assert tools.calls[0][2].timeout == 7.0

    async def test_adapter_crash_is_isolated(self, project):
        def crash(args, opts):
            raise RuntimeError("mapper exploded")

        tools = FakeTools({"eslint": crash, "madge": RunResult(0, "[]", "")})
        eslint, madge = await analyze(str(project), ["eslint", "madge"], _context(project, tools))
        assert not eslint.success
        assert eslint.metadata["error"]["type"] == "error"
        assert "RuntimeError" in eslint.metadata["error"]["message"]
        assert eslint.metadata["toolVersion"] == "eslint 1.0.0"
        assert madge.success

    async def test_spawn_failure_does_not_abort_siblings(self, project):
        def broken(args, opts):
            raise OSError(8, "Exec format error")

        tools = FakeTools({"pylint": broken, "mypy": RunResult(0, "", "")})
        mypy, pylint = await analyze(str(project), ["mypy", "pylint"], _context(project, tools))
        assert mypy.success
        assert not pylint.success
        assert pylint.metadata["error"]["metadata"]["exceptionType"] == "OSError"
        assert REGISTRY.live() == []

    async def test_unexecutable_binary_on_path(self, project, fake_path, fake_tool):
        broken = fake_path / "pylint"
        broken.write_bytes(b"\x7fNOPE\x00garbage")
        broken.chmod(0o755)
        fake_tool("mypy", 'if [ "$1" = "--version" ]; then echo "mypy 1.10.0"; fi\nexit 0')
        results = await analyze(str(project), ["pylint", "mypy"])
        by_tool = {r.tool: r for r in results}
        assert set(by_tool) == {"mypy", "pylint"}
        assert by_tool["pylint"].skipped or not by_tool["pylint"].success
        assert by_tool["mypy"].success


class TestCbmcAdapter:
    def _adapter(self, tmp_path, **limits):
        (tmp_path / "src").mkdir(exist_ok=True)
        (tmp_path / "src" / "buffer.c").write_text("int main(void) { return 0; }\n")
        config = {**DEFAULTS, "limits": {**DEFAULTS["limits"], **limits}}
        caps = AdapterCapabilities(
            mapper_context=MapperContext(project_root=str(tmp_path)),
            inventory=scan_project(tmp_path),
            config=config,
        )
        return CbmcAdapter(caps)

    def test_unwind_is_clamped(self, tmp_path):
        assert self._adapter(tmp_path, cbmc_unwind=500).unwind() == 50
        assert self._adapter(tmp_path, cbmc_unwind=0).unwind() == 1

    def test_build_args(self, tmp_path):
        args = self._adapter(tmp_path).build_args(tmp_path)
        assert "--xml-ui" in args
        assert args[-1] == "src/buffer.c"
        assert args[args.index("--unwind") + 1] == "10"

    def test_env(self, tmp_path):
        assert self._adapter(tmp_path).env() == {"CBMC_MAX_MEMORY": "4096"}

    async def test_unexpected_exit_code_is_failure(self, tmp_path):
        self._adapter(tmp_path)
        tools = FakeTools({"cbmc": RunResult(6, "", "PARSING ERROR")})
        ctx = AnalyzerContext.from_project(str(tmp_path), run=tools.run, probe=tools.probe)
        (result,) = await analyze(ctx.project_root, ["cbmc"], ctx)
        assert not result.success
        assert result.metadata["error"]["type"] == "parse"
        assert result.metadata["error"]["metadata"]["exitCode"] == 6
        assert "PARSING ERROR" in result.metadata["error"]["metadata"]["stderr"]


class TestAdapterRegistry:
    def test_every_adapter_declares_itself(self):
        for name, adapter in ADAPTERS.items():
            assert adapter.name == name
            assert adapter.mapper.tool == name
            assert adapter.mapper.category is adapter.category
            assert adapter.timeout_class in DEFAULTS["timeouts"]


class TestScanPackage:
    async def test_scans_synthetic_manifest(self):
        def npm_run(args, opts):
            assert "--package-lock-only" in args
            (Path(opts.cwd) / "package-lock.json").write_text("{}")
            return RunResult(0, "", "")

        def osv_run(args, opts):
            assert (Path(opts.cwd) / "package-lock.json").is_file()
            manifest = json.loads((Path(opts.cwd) / "package.json").read_text())
            assert manifest["dependencies"] == {"lodash": "4.17.20"}
            return RunResult(1, json.dumps({"results": [{
                "source": {"path": f"{opts.cwd}/package.json"},
                "packages": [{
                    "package": {"name": "lodash", "version": "4.17.20", "ecosystem": "npm"},
                    "vulnerabilities": [{"id": "GHSA-35jh-r3h4-6jhm", "aliases": ["CVE-2021-23337"],
                                         "database_specific": {"severity": "HIGH"}}],
                }],
            }]}), "")

        tools = FakeTools({"npm": npm_run, "osv-scanner": osv_run})
        result = await scan_package("npm", "lodash", "4.17.20", run=tools.run, probe=tools.probe)
        assert result.metadata["package"] == {"ecosystem": "npm", "name": "lodash", "version": "4.17.20"}
        assert result.issues[0].entity.canonical_path == "node_modules/lodash"
        assert result.issues[0].metadata["source"] == "package.json"
        assert result.metadata["lockfile"] == {"file": "package-lock.json", "generated": True, "exitCode": 0}
        assert [c[0] for c in tools.calls] == ["npm", "osv-scanner"]
        assert REGISTRY.live() == []

    async def test_no_package_sources_is_empty_success(self):
        tools = FakeTools({"osv-scanner": RunResult(128, "", "No package sources found")})
        result = await scan_package("pypi", "requests", "2.31.0", run=tools.run, probe=tools.probe)
        assert result.success
        assert result.issues == ()
        assert result.metadata["exitCode"] == 128
        assert "lockfile" not in result.metadata
        assert [c[0] for c in tools.calls] == ["osv-scanner"]

    async def test_lockfile_generation_failure_is_reported(self):
        def npm_missing(args, opts):
            raise ToolUnavailableError("Executable not found on PATH: npm", {"executable": "npm"})

        tools = FakeTools({"npm": npm_missing, "osv-scanner": RunResult(128, "", "")})
        result = await scan_package("npm", "lodash", "4.17.20", run=tools.run, probe=tools.probe)
        assert result.success
        assert result.metadata["lockfile"]["generated"] is False
        assert result.metadata["lockfile"]["error"]["type"] == "tool_unavailable"

    async def test_unsupported_ecosystem(self):
        with pytest.raises(ValueError):
            await scan_package("maven", "junit", "4.12")

    async def test_unsafe_name(self):
        with pytest.raises(UnsafeArgumentError):
            await scan_package("npm", "lodash; rm -rf /", None)
