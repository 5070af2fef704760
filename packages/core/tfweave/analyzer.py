"""Structural analyzer: inventory, dependency graph, complexity and issues for template bodies.

Works on raw template text, so it tolerates bodies that do not parse. When a
synthesized document is supplied for a template, the document-based detectors
run in place of their text counterparts. The analyzer never raises on bad
input; the worst case is an empty report.
"""

from __future__ import annotations

import logging
import os
import re
from collections import Counter
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from tfweave.detectors import DOCUMENT_DETECTORS, TEXT_DETECTORS, Issue, declaration_pattern
from tfweave.document import Block
from tfweave.extractor import TemplateExtractionResult, TemplateExtractor

logger = logging.getLogger(__name__)

_RESOURCE = declaration_pattern("resource", 2)
_DATA = declaration_pattern("data", 2)
_OUTPUT = declaration_pattern("output", 1)
_PROVIDER = declaration_pattern("provider", 1)
_MODULE = declaration_pattern("module", 1)
_LOCALS = declaration_pattern("locals", 0)
_COUNT = re.compile(r"""^[ \t]*(?:-[ \t]+)?["']?count["']?[ \t]*[:=]""", re.MULTILINE)
_FOR_EACH = re.compile(r"""^[ \t]*(?:-[ \t]+)?["']?for_each["']?[ \t]*[:=]""", re.MULTILINE)
_DYNAMIC = declaration_pattern("dynamic", 1)

_INTERPOLATION = re.compile(r"\$\{([^}]*)\}")
_RESOURCE_REF = re.compile(r"(?<![\w.])([a-z][a-z0-9]*_[a-z0-9_]+)\.([\w-]+)\.(\w+)")
_DATA_REF = re.compile(r"(?<![\w.])data\.(?!terraform_remote_state\.)([a-z]\w*)\.([\w-]+)\.(\w+)")
_MODULE_REF = re.compile(r"(?<![\w.])module\.([\w-]+)\.(\w+)")
_REMOTE_STATE_REF = re.compile(
    r"""(?<![\w.])data\.terraform_remote_state\.([\w-]+)(?:\.outputs)?(?:\.(\w+))?|\bremote_state\(\s*:?["']?([\w-]+)["']?\s*\)"""
)
_PROVIDER_REGION = re.compile(
    r"""provider[ \t]+["']?\w+["']?[ \t]*["']?[ \t]*[:{].*?\bregion["']?\s*[:=]\s*["']?[a-z]{2}(?:-gov)?-[a-z]+-\d""",
    re.DOTALL,
)
_TAGS = re.compile(r"\btags\b")

# complexity weights
_WEIGHTS = {"resources": 2, "count": 3, "for_each": 4, "dynamic": 5, "locals": 2, "modules": 3}
_MAX_RESOURCES = 50


@dataclass
class DependencyEdge:
    source: str  # template name
    target: str  # address of the referenced object
    kind: str  # resource_ref, data_ref, module_ref, remote_state_ref
    attribute: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.source, "to": self.target, "kind": self.kind, "attribute": self.attribute}


@dataclass
class TemplateAnalysis:
    name: str
    line: int = 0
    line_count: int = 0
    resources: list[tuple[str, str]] = field(default_factory=list)
    data_sources: list[tuple[str, str]] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    providers: list[str] = field(default_factory=list)
    modules: list[str] = field(default_factory=list)
    features: dict[str, int] = field(default_factory=dict)
    complexity_score: int = 0
    edges: list[DependencyEdge] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    has_tags: bool = False
    hard_coded_region: bool = False

    @property
    def resource_count(self) -> int:
        return len(self.resources)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "line": self.line,
            "line_count": self.line_count,
            "resource_count": self.resource_count,
            "resources": [{"type": t, "name": n} for t, n in self.resources],
            "data_sources": [{"type": t, "name": n} for t, n in self.data_sources],
            "outputs": self.outputs,
            "providers": self.providers,
            "modules": self.modules,
            "features": self.features,
            "complexity_score": self.complexity_score,
            "dependency_count": len(self.edges),
            "issue_count": len(self.issues),
        }


@dataclass
class AnalysisReport:
    templates: list[TemplateAnalysis] = field(default_factory=list)
    statistics: dict[str, Any] = field(default_factory=dict)
    complexity: dict[str, Any] = field(default_factory=dict)
    issues: list[Issue] = field(default_factory=list)
    edges: list[DependencyEdge] = field(default_factory=list)
    best_practices: dict[str, list[str]] = field(default_factory=dict)

    @property
    def dependency_graph(self) -> dict[str, Any]:
        nodes = list(dict.fromkeys([t.name for t in self.templates] + [e.target for e in self.edges]))
        return {
            "nodes": nodes,
            "edges": [e.to_dict() for e in self.edges],
            "edge_count": len(self.edges),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "templates": [t.to_dict() for t in self.templates],
            "statistics": self.statistics,
            "complexity": self.complexity,
            "issues": [i.to_dict() for i in self.issues],
            "dependency_graph": self.dependency_graph,
            "best_practices": self.best_practices,
        }


def complexity_rating(score: float) -> str:
    if score <= 20:
        return "simple"
    if score <= 50:
        return "moderate"
    if score <= 100:
        return "complex"
    return "very_complex"


def complexity_recommendations(score: float) -> list[str]:
    recommendations = []
    if score > 50:
        recommendations.append("Consider breaking down into smaller templates")
        recommendations.append("Use modules to encapsulate repeated patterns")
    if score > 100:
        recommendations.append("Infrastructure is very complex; consider splitting it by architecture layer")
        recommendations.append("Document dependencies and relationships clearly")
    return recommendations


class StructuralAnalyzer:
    """Pattern-based analysis of one or more template bodies."""

    def __init__(self, parallel: bool = False, max_workers: int = 4):
        self.parallel = parallel
        self.max_workers = max_workers

    def analyze(
        self,
        templates: Iterable[TemplateExtractionResult],
        documents: Mapping[str, Block] | None = None,
    ) -> AnalysisReport:
        """Analyze templates; ``documents`` maps template names to their synthesized documents."""
        items = list(templates)
        documents = documents or {}

        workers = min(len(items), os.cpu_count() or 1, self.max_workers)
        if self.parallel and workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                analyses = list(pool.map(lambda t: self.analyze_template(t, documents.get(t.name)), items))
        else:
            analyses = [self.analyze_template(t, documents.get(t.name)) for t in items]

        report = AnalysisReport(templates=analyses)
        for a in analyses:
            report.edges.extend(a.edges)
            report.issues.extend(a.issues)
        report.statistics = self._statistics(analyses, report.issues)
        report.complexity = self._complexity(analyses)
        report.best_practices = self._best_practices(analyses)
        logger.info(
            "Analyzed %d templates: %d resources, %d edges, %d issues",
            len(analyses),
            report.statistics["total_resources"],
            len(report.edges),
            len(report.issues),
        )
        return report

    def analyze_source(self, source_text: str, documents: Mapping[str, Block] | None = None) -> AnalysisReport:
        return self.analyze(TemplateExtractor().extract(source_text), documents)

    def analyze_file(self, path: str | Path, template: str | None = None) -> AnalysisReport:
        templates = TemplateExtractor().extract_file(path)
        if template is not None:
            templates = [t for t in templates if t.name == template]
        return self.analyze(templates)

    def analyze_template(self, template: TemplateExtractionResult, document: Block | None = None) -> TemplateAnalysis:
        content = template.content if isinstance(template.content, str) else ""
        analysis = TemplateAnalysis(name=template.name, line=template.line, line_count=len(content.splitlines()))

        analysis.resources = [(m.group(1), m.group(2)) for m in _RESOURCE.finditer(content)]
        analysis.data_sources = [(m.group(1), m.group(2)) for m in _DATA.finditer(content)]
        analysis.outputs = [m.group(1) for m in _OUTPUT.finditer(content)]
        analysis.providers = list(dict.fromkeys(m.group(1) for m in _PROVIDER.finditer(content)))
        analysis.modules = [m.group(1) for m in _MODULE.finditer(content)]
        analysis.features = {
            "resources": analysis.resource_count,
            "count": len(_COUNT.findall(content)),
            "for_each": len(_FOR_EACH.findall(content)),
            "dynamic": len(_DYNAMIC.findall(content)),
            "locals": len(_LOCALS.findall(content)),
            "modules": len(analysis.modules),
        }
        analysis.complexity_score = sum(_WEIGHTS[k] * n for k, n in analysis.features.items())
        analysis.edges = self._dependencies(template.name, content)
        analysis.issues = self._issues(template.name, content, document)
        analysis.has_tags = _TAGS.search(content) is not None
        analysis.hard_coded_region = _PROVIDER_REGION.search(content) is not None
        return analysis

    # --- internals ---

    def _dependencies(self, name: str, content: str) -> list[DependencyEdge]:
        found: list[tuple[int, DependencyEdge]] = []
        for chunk in _INTERPOLATION.finditer(content):
            for m in _RESOURCE_REF.finditer(chunk.group(1)):
                edge = DependencyEdge(name, f"{m.group(1)}.{m.group(2)}", "resource_ref", m.group(3))
                found.append((chunk.start(1) + m.start(), edge))
        for m in _DATA_REF.finditer(content):
            found.append((m.start(), DependencyEdge(name, f"data.{m.group(1)}.{m.group(2)}", "data_ref", m.group(3))))
        for m in _MODULE_REF.finditer(content):
            found.append((m.start(), DependencyEdge(name, f"module.{m.group(1)}", "module_ref", m.group(2))))
        for m in _REMOTE_STATE_REF.finditer(content):
            state = m.group(1) or m.group(3)
            found.append((m.start(), DependencyEdge(name, f"remote_state.{state}", "remote_state_ref", m.group(2))))
        found.sort(key=lambda item: item[0])
        return [edge for _, edge in found]

    def _issues(self, name: str, content: str, document: Block | None) -> list[Issue]:
        issues: list[Issue] = []
        for detector, check in TEXT_DETECTORS.items():
            try:
                if document is not None and detector in DOCUMENT_DETECTORS:
                    found = DOCUMENT_DETECTORS[detector](document)
                else:
                    found = check(content)
            except Exception:
                logger.warning("Detector %s failed on template '%s'", detector, name, exc_info=True)
                continue
            for issue in found:
                issue.template = name
                issues.append(issue)
        return issues

    def _statistics(self, analyses: list[TemplateAnalysis], issues: list[Issue]) -> dict[str, Any]:
        types = Counter(t for a in analyses for t, _ in a.resources)
        ordered = sorted(types.items(), key=lambda kv: (-kv[1], kv[0]))
        total = sum(a.resource_count for a in analyses)
        severities = Counter(i.severity for i in issues)
        return {
            "template_count": len(analyses),
            "total_resources": total,
            "total_lines": sum(a.line_count for a in analyses),
            "average_resources_per_template": round(total / len(analyses), 2) if analyses else 0,
            "resource_types": dict(ordered),
            "most_used_resource": ordered[0][0] if ordered else None,
            "issues_by_severity": {s: severities.get(s, 0) for s in ("high", "medium", "low")},
        }

    def _complexity(self, analyses: list[TemplateAnalysis]) -> dict[str, Any]:
        total = sum(a.complexity_score for a in analyses)
        return {
            "total_score": total,
            "average_score": round(total / len(analyses), 2) if analyses else 0,
            "rating": complexity_rating(total),
            "by_template": [{"template": a.name, "score": a.complexity_score} for a in analyses],
            "recommendations": complexity_recommendations(total),
        }

    def _best_practices(self, analyses: list[TemplateAnalysis]) -> dict[str, list[str]]:
        followed: list[str] = []
        violations: list[str] = []
        for a in analyses:
            if a.has_tags:
                followed.append(f"Resource tagging implemented in {a.name}")
            if any(e.kind == "resource_ref" for e in a.edges):
                followed.append(f"Resources wired through references in {a.name}")
            if a.hard_coded_region:
                violations.append(f"Hard-coded provider region in {a.name}")
            if a.resource_count > _MAX_RESOURCES:
                violations.append(f"Template {a.name} has too many resources (>{_MAX_RESOURCES})")
        return {"followed": followed, "violations": violations}


def analyze(templates: Iterable[TemplateExtractionResult], documents: Mapping[str, Block] | None = None) -> AnalysisReport:
    return StructuralAnalyzer().analyze(templates, documents)
