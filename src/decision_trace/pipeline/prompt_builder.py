"""Stage prompt construction behind the evidence firewall.

Stage 1 is the only stage whose prompt may carry raw input. Later stages
are built from the validated Stage 1 digest subset plus the validated
outputs of intermediate stages. Every string in the digest subset is
clipped to 20 words, so a Stage 1 field that echoes the document cannot
carry a longer verbatim run past the firewall. Intermediate outputs only
have their citation excerpts clipped.
"""

import json
from typing import Any, Mapping, Optional

import structlog
from langchain_core.prompts import PromptTemplate

from decision_trace.config.prompts import (
    DOCUMENT_ATTACHMENT_SECTION,
    DOCUMENT_TEXT_SECTION,
    STAGE_PROMPTS,
)
from decision_trace.contracts import get_contract
from decision_trace.errors import EvidenceFirewallError, PipelineInputError

logger = structlog.get_logger(__name__)

MAX_EXCERPT_WORDS = 20

# Stage 1 fields that later stages may see. Fragments and decision
# candidates carry verbatim quotes and stay behind the firewall.
DIGEST_FIELDS = (
    "normalized_entities",
    "extracted_claims",
    "contradictions",
    "missing_info",
)

_EXCERPT_KEYS = ("excerpt", "quote", "citation")


def clip_words(text: str, max_words: int = MAX_EXCERPT_WORDS) -> str:
    words = text.split()
    if len(words) <= max_words:
        return text
    return " ".join(words[:max_words]) + " ..."


def clip_excerpts(value: Any, key: str = "") -> Any:
    """Return a copy of ``value`` with excerpt-like strings clipped to 20 words."""
    if isinstance(value, dict):
        return {k: clip_excerpts(v, k) for k, v in value.items()}
    if isinstance(value, list):
        return [clip_excerpts(item, key) for item in value]
    if isinstance(value, str) and any(marker in key.lower() for marker in _EXCERPT_KEYS):
        return clip_words(value)
    return value


def clip_strings(value: Any, max_words: int = MAX_EXCERPT_WORDS) -> Any:
    """Return a copy of ``value`` with every string clipped to ``max_words``."""
    if isinstance(value, dict):
        return {k: clip_strings(v, max_words) for k, v in value.items()}
    if isinstance(value, list):
        return [clip_strings(item, max_words) for item in value]
    if isinstance(value, str):
        return clip_words(value, max_words)
    return value


def digest_subset(digest: Mapping[str, Any]) -> dict[str, Any]:
    """Select the Stage 1 fields later stages are allowed to consume."""
    return {name: clip_strings(digest[name]) for name in DIGEST_FIELDS if name in digest}


def _render(template: str, **variables: str) -> str:
    return PromptTemplate.from_template(template).format(**variables)


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def build_prompt(
    stage_number: int,
    prior_outputs: Mapping[int, Mapping[str, Any]],
    raw_text: Optional[str] = None,
) -> str:
    """Build the prompt for a stage.

    Args:
        stage_number: Stage to build for.
        prior_outputs: Validated records of earlier stages, keyed by stage number.
        raw_text: Raw document text. Accepted for Stage 1 only. When omitted
            at Stage 1 the prompt refers to the attached raw document.

    Returns:
        Rendered prompt text.

    Raises:
        EvidenceFirewallError: If raw text is offered to a stage after Stage 1.
        PipelineInputError: If a later stage is requested without a digest.
        UnknownStageError: If the stage number has no contract.
    """
    contract = get_contract(stage_number)
    template = STAGE_PROMPTS[stage_number]

    if stage_number == 1:
        if raw_text is not None:
            section = _render(DOCUMENT_TEXT_SECTION, raw_text=raw_text)
        else:
            section = DOCUMENT_ATTACHMENT_SECTION
        return _render(template, document_section=section)

    if raw_text is not None:
        raise EvidenceFirewallError(
            f"Stage {stage_number} ({contract.stage_id}) must not receive raw input"
        )

    digest = prior_outputs.get(1)
    if digest is None:
        raise PipelineInputError(
            f"Stage {stage_number} requires the validated Stage 1 digest"
        )

    intermediate = {
        get_contract(k).stage_id: clip_excerpts(dict(prior_outputs[k]))
        for k in sorted(prior_outputs)
        if 1 < k < stage_number
    }

    prompt = _render(
        template,
        digest_json=_to_json(digest_subset(digest)),
        prior_stages_json=_to_json(intermediate) if intermediate else "(none available)",
    )
    logger.debug(
        "prompt_built",
        stage=stage_number,
        prior_stages=sorted(intermediate),
        length=len(prompt),
    )
    return prompt
