"""Prompt templates for the six analysis stages."""

# Common instruction to suppress reasoning text and ensure JSON-only output
# Note: curly braces must be escaped as {{ }} for LangChain templates
JSON_ONLY_INSTRUCTION = """
CRITICAL: You MUST respond with ONLY a valid JSON object.
- Do NOT include any thinking, reasoning, or explanation.
- Do NOT use markdown code blocks.
- Start your response directly with the opening brace
- No text before or after the JSON."""

NON_ECHO_INSTRUCTION = """
SOURCE HANDLING RULES:
1. Do NOT copy sentences from the source. Paraphrase in your own words.
2. Short citation excerpts are allowed only in "excerpt" / "quote" fields, at most 20 words each.
3. Every excerpt must be paired with a stable locator (chunk_index, page or line).
4. Never invent facts that are not supported by the source."""

ANALYST_PREAMBLE = """You are a forensic decision analyst. You reconstruct how a decision was made, who made it, what evidence it rested on and what happened afterwards, producing an auditable record.
""" + NON_ECHO_INSTRUCTION

# =============================================================================
# Stage 1: Document Digest (the ONLY stage that sees raw input)
# =============================================================================

DOCUMENT_DIGEST_PROMPT = ANALYST_PREAMBLE + """

TASK: Produce a forensic digest of the document below.

FRAGMENT CLASSIFICATION:
Classify EVERY fragment into EXACTLY ONE of:
- evidence: facts, data or observations the decision rests on
- assumption: beliefs taken as true without proof
- risk: threats, uncertainties or downsides
- stakeholder_signal: positions, concerns or preferences voiced by a person or group

DECISION DETECTION:
- List decision candidates with their verbatim text, whether they are "explicit" or "implicit", and a confidence between 0 and 1.
- If NO decision can be identified, set "has_clear_decision" to false AND explain why in "no_decision_message".

{document_section}

Respond with ONLY this JSON structure (no other text):
{{
  "has_clear_decision": true,
  "no_decision_message": null,
  "normalized_entities": {{
    "people": ["Name"],
    "organizations": ["Organization"],
    "products": ["Product"],
    "dates": ["2024-01-31"]
  }},
  "extracted_claims": [
    {{
      "claim": "Claim paraphrased in your own words",
      "category": "fact|assumption|requirement|constraint",
      "evidence_anchor": {{"excerpt": "At most 20 verbatim words", "chunk_index": 0, "page": 1}}
    }}
  ],
  "contradictions": [
    {{
      "statement1": "First statement",
      "statement2": "Conflicting statement",
      "description": "Why they conflict"
    }}
  ],
  "missing_info": [
    {{
      "information": "What is missing",
      "why_needed": "Why it matters for the decision",
      "category": "context|evidence|stakeholder|timeline|outcome|other"
    }}
  ],
  "decision_candidates": [
    {{"text": "Verbatim candidate text", "type": "explicit|implicit", "confidence": 0.8}}
  ],
  "fragments": [
    {{
      "quote": "Verbatim fragment of at most 20 words",
      "classification": "evidence|assumption|risk|stakeholder_signal",
      "context": "Short paraphrase of the surrounding context",
      "linked_candidate_index": 0
    }}
  ],
  "extracted_at": "2024-01-31T12:00:00Z"
}}""" + JSON_ONLY_INSTRUCTION

DOCUMENT_TEXT_SECTION = """DOCUMENT:
---
{raw_text}
---"""

DOCUMENT_ATTACHMENT_SECTION = """DOCUMENT:
The document is attached to this request as a file. Analyze the attached file."""

# =============================================================================
# Stages 2-6: structured input only
# =============================================================================

STRUCTURED_INPUT_SECTION = """You do NOT have access to the original document. Work ONLY from the validated analysis below.

DOCUMENT DIGEST (validated):
{digest_json}

PRIOR STAGE OUTPUTS (validated):
{prior_stages_json}"""

DECISION_HYPOTHESIS_PROMPT = ANALYST_PREAMBLE + """

TASK: Infer the decision that was made, who owned it and the criteria it was based on.

""" + STRUCTURED_INPUT_SECTION + """

Respond with ONLY this JSON structure (no other text):
{{
  "has_clear_decision": true,
  "inferred_decision": "The decision in one sentence",
  "decision_type": "hiring|product_launch|procurement|policy|incident|other",
  "decision_owner_candidates": [
    {{"name": "Person", "role": "Role", "confidence": 0.7, "evidence_anchor": {{"excerpt": "At most 20 words", "chunk_index": 0}}}}
  ],
  "decision_criteria": [
    {{"criterion": "Criterion", "inferred_from": "Which claim or fragment it comes from"}}
  ],
  "confidence": {{"score": 0.7, "reasons": ["Reason"]}},
  "decision_date": "2024-01-31"
}}""" + JSON_ONLY_INSTRUCTION

CONTEXT_ANALYSIS_PROMPT = ANALYST_PREAMBLE + """

TASK: Describe the business, organizational and external context the decision was made in, and the stakeholders involved.

""" + STRUCTURED_INPUT_SECTION + """

Respond with ONLY this JSON structure (no other text):
{{
  "context_analysis": {{
    "business_context": "Summary of the business situation",
    "market_conditions": "Relevant market conditions or null",
    "organizational_factors": ["Factor"],
    "external_factors": ["Factor"]
  }},
  "stakeholders": [
    {{"name": "Stakeholder", "role": "Role", "influence": "low|medium|high"}}
  ],
  "analysis_date": "2024-01-31T12:00:00Z"
}}""" + JSON_ONLY_INSTRUCTION

OUTCOME_ANALYSIS_PROMPT = ANALYST_PREAMBLE + """

TASK: Compare expected and actual outcomes of the decision and assess its impact.

""" + STRUCTURED_INPUT_SECTION + """

Respond with ONLY this JSON structure (no other text):
{{
  "outcome_analysis": {{
    "actual_outcomes": {{"key_result": "What actually happened"}},
    "expected_vs_actual": [
      {{"metric": "Metric", "expected": "Expected value", "actual": "Actual value", "variance": "Difference"}}
    ],
    "success_indicators": ["Indicator"],
    "failure_indicators": ["Indicator"]
  }},
  "impact_assessment": {{
    "financial_impact": "Financial impact",
    "operational_impact": "Operational impact",
    "reputation_impact": "Reputation impact"
  }},
  "analysis_date": "2024-01-31T12:00:00Z"
}}""" + JSON_ONLY_INSTRUCTION

ROOT_CAUSE_ANALYSIS_PROMPT = ANALYST_PREAMBLE + """

TASK: Identify the root causes behind the outcome and the factors that contributed to it. Provide at least one root cause.

""" + STRUCTURED_INPUT_SECTION + """

Respond with ONLY this JSON structure (no other text):
{{
  "root_causes": [
    {{
      "cause": "Root cause",
      "category": "process|people|technology|external|strategy",
      "severity": "critical|high|medium|low",
      "evidence": ["Supporting claim or fragment"]
    }}
  ],
  "contributing_factors": ["Factor"],
  "analysis_date": "2024-01-31T12:00:00Z"
}}""" + JSON_ONLY_INSTRUCTION

DECISION_LEDGER_PROMPT = ANALYST_PREAMBLE + """

TASK: Produce lessons learned, recommendations, follow-up actions and the Decision Ledger. Provide at least one lesson and one recommendation.

LEDGER RULES:
- "flow" lists the decision steps in order with the actor (AI, Human or System).
- Every evidence item states whether it was used and its weight (low, medium, high).
- Every risk states whether it was accepted, by whom and the mitigation (empty string if none).
- Every assumption states whether it was validated.
- "score_rationale" gives 3 to 6 concrete reasons. The trace score itself is recomputed downstream.

""" + STRUCTURED_INPUT_SECTION + """

Respond with ONLY this JSON structure (no other text):
{{
  "lessons_learned": [
    {{"lesson": "Lesson", "category": "process|decision_making|execution|monitoring", "priority": "low|medium|high"}}
  ],
  "recommendations": [
    {{"recommendation": "Recommendation", "priority": "low|medium|high", "feasibility": "low|medium|high", "expected_impact": "Impact"}}
  ],
  "action_items": [
    {{"action": "Action", "owner": "Owner", "due_date": "2024-03-01", "status": "pending|in_progress|completed"}}
  ],
  "decision_ledger": {{
    "decision": {{"outcome": "What was decided", "confidence": "low|medium|high", "score_rationale": ["Reason"]}},
    "flow": [
      {{"step": 1, "label": "Step", "actor": "AI|Human|System", "ai_influence": false, "override_applied": false, "rules_applied": [], "confidence_delta": 0}}
    ],
    "evidence_ledger": [
      {{"evidence": "Evidence", "used": true, "weight": "low|medium|high", "confidence_impact": 0, "reason": "Why"}}
    ],
    "risk_ledger": [
      {{"risk": "Risk", "identified": true, "accepted": false, "severity": "medium", "accepted_by": "", "mitigation": ""}}
    ],
    "assumption_ledger": [
      {{"assumption": "Assumption", "explicit": false, "validated": false, "owner": "", "invalidation_impact": ""}}
    ],
    "accountability": {{"responsible": "Person", "accountable": "Person", "consulted": [], "informed": []}}
  }},
  "completion_date": "2024-01-31T12:00:00Z"
}}""" + JSON_ONLY_INSTRUCTION

STAGE_PROMPTS: dict[int, str] = {
    1: DOCUMENT_DIGEST_PROMPT,
    2: DECISION_HYPOTHESIS_PROMPT,
    3: CONTEXT_ANALYSIS_PROMPT,
    4: OUTCOME_ANALYSIS_PROMPT,
    5: ROOT_CAUSE_ANALYSIS_PROMPT,
    6: DECISION_LEDGER_PROMPT,
}
