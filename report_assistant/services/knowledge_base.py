from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

DEFAULT_KNOWLEDGE_PATH = Path(__file__).resolve().parent.parent / "knowledge" / "rcg_knowledge.yaml"

_WORD_RE = re.compile(r"[A-Za-z]+")


@dataclass(frozen=True)
class BusinessRule:
    id: str
    category: str
    rule: str
    severity: str = "important"


@dataclass(frozen=True)
class MarginTerm:
    metric: str
    formula: str
    when_to_use: str


@dataclass(frozen=True)
class TermMapping:
    concept: str
    aliases: tuple[str, ...] = ()
    default_kpi: str | None = None


@dataclass(frozen=True)
class NameVariantGroup:
    names: tuple[str, ...]
    match: tuple[str, ...]


@dataclass(frozen=True)
class FewShotExample:
    question: str
    reasoning: str
    sql: str
    category: str
    kpis_used: tuple[str, ...] = ()


@dataclass(frozen=True)
class NameHint:
    mentioned: str
    patterns: tuple[str, ...]


@dataclass(frozen=True)
class KnowledgeBase:
    version: str
    business_rules: tuple[BusinessRule, ...] = ()
    margin_terms: tuple[MarginTerm, ...] = ()
    term_mappings: tuple[TermMapping, ...] = ()
    entity_lookups: tuple[tuple[str, str], ...] = ()
    name_variants: tuple[NameVariantGroup, ...] = ()
    time_notes: str = ""
    kpi_fields: frozenset[str] = field(default_factory=frozenset)
    few_shot_examples: tuple[FewShotExample, ...] = ()

    @classmethod
    def from_yaml(cls, path: str | Path) -> "KnowledgeBase":
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "KnowledgeBase":
        return cls(
            version=str(data["version"]),
            business_rules=tuple(BusinessRule(**entry) for entry in data.get("business_rules", [])),
            margin_terms=tuple(MarginTerm(**entry) for entry in data.get("margin_terms", [])),
            term_mappings=tuple(
                TermMapping(
                    concept=entry["concept"],
                    aliases=tuple(entry.get("aliases", [])),
                    default_kpi=entry.get("default_kpi"),
                )
                for entry in data.get("term_mappings", [])
            ),
            entity_lookups=tuple((data.get("entity_lookups") or {}).items()),
            name_variants=tuple(
                NameVariantGroup(
                    names=tuple(name.lower() for name in entry["names"]),
                    match=tuple(fragment.lower() for fragment in entry["match"]),
                )
                for entry in data.get("name_variants", [])
            ),
            time_notes=(data.get("time_notes") or "").strip(),
            kpi_fields=frozenset(data.get("kpi_fields", [])),
            few_shot_examples=tuple(
                FewShotExample(
                    question=entry["question"],
                    reasoning=entry["reasoning"],
                    sql=entry["sql"].strip(),
                    category=entry["category"],
                    kpis_used=tuple(entry.get("kpis_used", [])),
                )
                for entry in data.get("few_shot_examples", [])
            ),
        )

    def critical_rules(self) -> list[BusinessRule]:
        return [rule for rule in self.business_rules if rule.severity == "critical"]

    def name_hints(self, question: str) -> list[NameHint]:
        """
        Capitalised words after the first one that belong to a known
        nickname group, mapped to the substrings the query should search for.
        """
        hints: list[NameHint] = []
        seen: set[str] = set()
        for index, match in enumerate(_WORD_RE.finditer(question)):
            word = match.group(0)
            if index == 0 or not word[0].isupper():
                continue
            lowered = word.lower()
            if lowered in seen:
                continue
            for group in self.name_variants:
                if lowered in group.names:
                    hints.append(NameHint(mentioned=word, patterns=group.match))
                    seen.add(lowered)
                    break
        return hints


def load_knowledge_base(path: str | Path | None = None) -> KnowledgeBase:
    return KnowledgeBase.from_yaml(path or DEFAULT_KNOWLEDGE_PATH)
