"""Cross-tool pattern catalog loaded from YAML rule files."""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from cityscan.model.schema import DEFAULT_SEARCH_RADIUS, CorrelationHints, make_hints
from cityscan.utils.logging import logger

DEFAULT_RULES_DIR = Path(__file__).parent / "rules"
DEFAULT_SIMILARITY_FACTORS = ("file", "line", "category")


@dataclass
class PatternRule:
    """Contributes cross-tool patterns to issues whose rule, text or severity match."""

    name: str
    patterns: list[str]
    rule: str | None = None
    message: str | None = None
    severities: list[str] = field(default_factory=list)
    _rule_regex: re.Pattern | None = field(default=None, init=False, repr=False)
    _message_regex: re.Pattern | None = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if not self.patterns:
            raise ValueError(f"Rule '{self.name}' must declare at least one pattern")
        if self.rule is None and self.message is None and not self.severities:
            raise ValueError(f"Rule '{self.name}' needs a 'rule', 'message' or 'severity' matcher")
        try:
            if self.rule is not None:
                self._rule_regex = re.compile(self.rule, re.IGNORECASE)
            if self.message is not None:
                self._message_regex = re.compile(self.message, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Rule '{self.name}' has an invalid regex: {e}") from e
        self.severities = [s.lower() for s in self.severities]

    def matches(self, rule_id: str, text: str, severity: str) -> bool:
        if self._rule_regex is not None and not self._rule_regex.search(rule_id or ""):
            return False
        if self._message_regex is not None and not self._message_regex.search(text or ""):
            return False
        if self.severities and severity.lower() not in self.severities:
            return False
        return True


@dataclass
class ToolPatterns:
    tool: str
    always: list[str] = field(default_factory=list)
    similarity_factors: list[str] = field(default_factory=lambda: list(DEFAULT_SIMILARITY_FACTORS))
    rules: list[PatternRule] = field(default_factory=list)


class PatternCatalog:
    """Resolves the crossToolPatterns for an issue from declarative rules.

    Adding a pattern is a YAML change; neither mappers nor the engine need
    to be touched.
    """

    def __init__(
        self,
        tools: dict[str, ToolPatterns] | None = None,
        search_radius: tuple[int, int] = DEFAULT_SEARCH_RADIUS,
    ):
        self.tools = tools or {}
        self.search_radius = search_radius

    @classmethod
    def load(
        cls,
        rules_dir: Path | None = None,
        search_radius: tuple[int, int] = DEFAULT_SEARCH_RADIUS,
    ) -> "PatternCatalog":
        """Load every *.yml / *.yaml file in ``rules_dir``.

        Raises:
            FileNotFoundError: If the rules directory doesn't exist.
        """
        rules_dir = Path(rules_dir) if rules_dir else DEFAULT_RULES_DIR
        if not rules_dir.is_dir():
            raise FileNotFoundError(f"Pattern rules directory not found: {rules_dir}")

        tools: dict[str, ToolPatterns] = {}
        files = sorted(list(rules_dir.glob("*.yml")) + list(rules_dir.glob("*.yaml")))
        for yaml_file in files:
            try:
                for entry in _load_yaml_file(yaml_file):
                    existing = tools.get(entry.tool)
                    if existing is None:
                        tools[entry.tool] = entry
                    else:
                        existing.always.extend(p for p in entry.always if p not in existing.always)
                        existing.rules.extend(entry.rules)
            except (yaml.YAMLError, ValueError, OSError) as e:
                logger.warning(f"Failed to load pattern rules from {yaml_file}: {e}")

        logger.debug(f"Loaded pattern rules for {len(tools)} tools from {rules_dir}")
        return cls(tools, search_radius)

    def with_radius(self, search_radius: tuple[int, int]) -> "PatternCatalog":
        return PatternCatalog(self.tools, search_radius)

    def patterns_for(self, tool: str, rule_id: str, text: str = "", severity: str = "") -> tuple[str, ...]:
        entry = self.tools.get(tool)
        if entry is None:
            return ()
        found = set(entry.always)
        for rule in entry.rules:
            if rule.matches(rule_id, text, severity):
                found.update(rule.patterns)
        return tuple(sorted(found))

    def hints_for(self, tool: str, rule_id: str, text: str = "", severity: str = "") -> CorrelationHints:
        entry = self.tools.get(tool)
        factors = entry.similarity_factors if entry else DEFAULT_SIMILARITY_FACTORS
        return make_hints(
            cross_tool_patterns=self.patterns_for(tool, rule_id, text, severity),
            similarity_factors=factors,
            search_radius=self.search_radius,
        )


def _load_yaml_file(file_path: Path) -> list[ToolPatterns]:
    with open(file_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict) or not isinstance(data.get("tools"), dict):
        raise ValueError(f"Invalid pattern file format in {file_path}: expected a 'tools' mapping")

    entries = []
    for tool, entry in data["tools"].items():
        entry = entry or {}
        rules = []
        for rule_data in entry.get("rules", []) or []:
            try:
                rules.append(_parse_rule(rule_data))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping invalid pattern rule for {tool} in {file_path}: {e}")
        entries.append(
            ToolPatterns(
                tool=str(tool),
                always=[str(p) for p in entry.get("always", []) or []],
                similarity_factors=[str(f) for f in entry.get("similarity_factors", DEFAULT_SIMILARITY_FACTORS)],
                rules=rules,
            )
        )
    return entries


def _parse_rule(rule_data: dict[str, Any]) -> PatternRule:
    if not isinstance(rule_data, dict):
        raise ValueError("Rule must be a mapping")
    if "name" not in rule_data:
        raise KeyError("Rule must have a 'name' field")
    patterns = rule_data.get("patterns")
    if not isinstance(patterns, list):
        raise ValueError("'patterns' must be a list")
    severities = rule_data.get("severity", [])
    if isinstance(severities, str):
        severities = [severities]
    return PatternRule(
        name=str(rule_data["name"]),
        patterns=[str(p) for p in patterns],
        rule=rule_data.get("rule"),
        message=rule_data.get("message"),
        severities=list(severities),
    )


@lru_cache(maxsize=1)
def default_catalog() -> PatternCatalog:
    """The packaged catalog, loaded once per process."""
    return PatternCatalog.load(DEFAULT_RULES_DIR)
