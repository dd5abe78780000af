"""
Parameter validator — decides whether a planner proposal may run.

Order: schema -> pixel existence -> tool plausibility -> historical prior.
The first blocking failure short-circuits. Confidence is the minimum over all
steps, never an average, and only a validated call can reach execution.
"""

from __future__ import annotations

import asyncio
import statistics
from typing import NamedTuple

import numpy as np

from app.core.config import settings
from app.core.log import logger
from app.history.features import feature_vector
from app.history.store import HistoryStore
from app.pixels import rgb_to_hex, sample_pixels
from app.schema.analysis import ImageAnalysis
from app.schema.history import SimilarRecord
from app.schema.tool import ToolCallProposal, ToolFamily, ToolSpec, ValidatedToolCall, ValidationResult
from app.tools.catalog import TOOL_CATALOG
from app.tools.params import PARAMETER_MODELS, parse_parameters
from app.validation.checks import PLAUSIBILITY_CHECKS, CheckContext, Findings, check_color_existence

__all__ = ("ParameterValidator", "ValidationVerdict", "validate_parameters")

# Parameters the historical prior may re-tune; everything else is user intent
_TUNABLE = frozenset({"tolerance", "feather", "amount"})


class ValidationVerdict(NamedTuple):
    result: ValidationResult
    call: ValidatedToolCall | None  # None unless result.is_valid


def validate_parameters(
    tool_name: str,
    parameters: dict,
    analysis: ImageAnalysis,
    history_sample: list[SimilarRecord],
    samples: np.ndarray | None = None,
    catalog: dict[str, ToolSpec] | None = None,
) -> ValidationResult:
    """Pure validation of one proposal against ground truth and prior runs."""
    catalog = TOOL_CATALOG if catalog is None else catalog
    spec = catalog.get(tool_name)
    if spec is None:
        return ValidationResult(
            is_valid=False,
            confidence=0.0,
            errors=[f"Unknown tool: {tool_name}"],
            reasoning="Tool is not registered in the catalog",
        )

    findings = Findings()

    # 1. Schema
    model = PARAMETER_MODELS.get(spec.name)
    if model is None:
        return ValidationResult(
            is_valid=False,
            confidence=0.0,
            errors=[f"No parameter contract registered for {tool_name}"],
            reasoning="Tool has no parameter model",
        )
    clean, errors, warnings = parse_parameters(model, parameters)
    findings.warnings.extend(warnings)
    if clean is None:
        findings.errors.extend(errors)
        findings.cap(0.0)
        findings.note("Schema check failed")
        return _to_result(findings, None)
    findings.note("Schema check passed")

    # 2. Pixel existence
    colors: tuple[tuple[int, int, int], ...] = ()
    if spec.family == ToolFamily.color_removal:
        colors = check_color_existence(clean, samples, findings)
        if findings.blocked:
            return _to_result(findings, None)
        # The tool removes exactly the colors that were checked
        clean["colors"] = [{"hex": rgb_to_hex(rgb), "r": rgb[0], "g": rgb[1], "b": rgb[2]} for rgb in colors]

    # 3. Plausibility
    check = PLAUSIBILITY_CHECKS.get(tool_name)
    if check is not None:
        check(clean, CheckContext(analysis=analysis, samples=samples, colors=colors), findings)
        if findings.blocked:
            return _to_result(findings, None)
    if spec.family == ToolFamily.recolor:
        # Indices refer to this analysis' palette, the tool must not re-cluster
        palette = analysis.dominant_colors
        clean["colorMappings"] = [
            {**mapping, "originalColor": palette[mapping["originalIndex"]].hex} for mapping in clean["colorMappings"]
        ]

    # 3b. Historical prior
    historical = _check_history(spec, clean, history_sample, findings)
    return _to_result(findings, historical, clean)


def _check_history(
    spec: ToolSpec,
    parameters: dict,
    history_sample: list[SimilarRecord],
    findings: Findings,
) -> float:
    if not history_sample:
        neutral = settings.HISTORY_NEUTRAL_CONFIDENCE
        findings.note(f"No similar history for {spec.name}, neutral prior {neutral:g}")
        findings.cap(neutral)
        return neutral

    historical = statistics.fmean(s.record.quality_score for s in history_sample)
    findings.note(f"{len(history_sample)} similar run(s), average quality {historical:.0f}")

    properties = spec.parameters.get("properties", {})
    for name in _TUNABLE & properties.keys():
        prop = properties[name]
        value = parameters.get(name, prop.get("default"))
        observed = [
            s.record.parameters[name]
            for s in history_sample
            if isinstance(s.record.parameters.get(name), (int, float))
            and not isinstance(s.record.parameters.get(name), bool)
        ]
        if value is None or len(observed) < 2:
            continue
        span = prop["maximum"] - prop["minimum"]
        median = statistics.median(observed)
        if abs(value - median) > span * settings.HISTORY_DEVIATION_PCT / 100:
            suggested = round(median) if span >= 10 else round(median, 2)
            findings.adjusted[name] = suggested
            findings.warn(f"{name}={value:g} is far from what worked on similar images ({suggested:g})", 80)

    if spec.name == "recolor_image":
        counts = [len(s.record.parameters.get("colorMappings") or []) for s in history_sample]
        average = statistics.fmean(counts) if counts else 0
        mappings = len(parameters.get("colorMappings") or [])
        if average and mappings > 2 * average:
            findings.warn(f"{mappings} color mappings is unusually many (similar edits used {average:.1f})", 85)

    if historical < settings.HISTORY_STORE_THRESHOLD:
        findings.warn(f"Similar edits historically scored only {historical:.0f}", historical)
    findings.cap(historical)
    return historical


def _to_result(findings: Findings, historical: float | None, parameters: dict | None = None) -> ValidationResult:
    return ValidationResult(
        is_valid=not findings.errors,
        confidence=round(findings.confidence, 1),
        errors=findings.errors,
        warnings=findings.warnings,
        adjusted_parameters=findings.adjusted or None,
        reasoning="; ".join(findings.reasoning),
        historical_confidence=historical,
        validated_parameters=parameters if not findings.errors else None,
    )


class ParameterValidator:
    """Gathers the evidence (history neighbours, pixel samples) and runs validation."""

    def __init__(self, history: HistoryStore, catalog: dict[str, ToolSpec] | None = None):
        self.history = history
        self.catalog = TOOL_CATALOG if catalog is None else catalog

    async def validate(
        self,
        proposal: ToolCallProposal,
        analysis: ImageAnalysis,
        rgba: np.ndarray | None = None,
    ) -> ValidationVerdict:
        spec = self.catalog.get(proposal.tool_name)
        history_sample: list[SimilarRecord] = []
        samples = None
        if spec is not None:
            history_sample = await self.history.find_similar(
                spec.name, feature_vector(analysis), settings.HISTORY_SIMILAR_K
            )
            if spec.family == ToolFamily.color_removal and rgba is not None:
                samples = await asyncio.to_thread(
                    sample_pixels,
                    rgba,
                    ratio=settings.COLOR_SAMPLE_RATIO,
                    minimum=settings.COLOR_SAMPLE_MIN,
                    maximum=settings.COLOR_SAMPLE_MAX,
                )

        result = validate_parameters(
            proposal.tool_name,
            proposal.parameters,
            analysis,
            history_sample,
            samples=samples,
            catalog=self.catalog,
        )
        logger.debug(
            f"Validated {proposal.tool_name}: valid={result.is_valid} "
            f"confidence={result.confidence:g} errors={len(result.errors)} warnings={len(result.warnings)}"
        )
        if not result.is_valid:
            return ValidationVerdict(result, None)

        parameters = dict(result.validated_parameters or {})
        if result.adjusted_parameters and settings.APPLY_ADJUSTED_PARAMETERS:
            parameters.update(result.adjusted_parameters)
        call = ValidatedToolCall(
            tool_name=proposal.tool_name,
            parameters=parameters,
            proposal=proposal,
            validation=result,
        )
        return ValidationVerdict(result, call)
