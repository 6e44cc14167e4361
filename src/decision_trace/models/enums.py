"""Enumeration types for the pipeline models."""

from enum import Enum


class StageStatus(str, Enum):
    """Outcome of a single stage within a run."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"  # Reused from a cached validated output on resume


class CandidateType(str, Enum):
    """How a decision candidate appears in the document."""

    EXPLICIT = "explicit"
    IMPLICIT = "implicit"


class FragmentClassification(str, Enum):
    """Exactly one class per extracted fragment."""

    EVIDENCE = "evidence"
    ASSUMPTION = "assumption"
    RISK = "risk"
    STAKEHOLDER_SIGNAL = "stakeholder_signal"


class ClaimCategory(str, Enum):
    """Category of a claim extracted into the document digest."""

    FACT = "fact"
    ASSUMPTION = "assumption"
    REQUIREMENT = "requirement"
    CONSTRAINT = "constraint"


class MissingInfoCategory(str, Enum):
    """What kind of information the document lacks."""

    CONTEXT = "context"
    EVIDENCE = "evidence"
    STAKEHOLDER = "stakeholder"
    TIMELINE = "timeline"
    OUTCOME = "outcome"
    OTHER = "other"


class DecisionType(str, Enum):
    """Classification of the inferred decision."""

    HIRING = "hiring"
    PRODUCT_LAUNCH = "product_launch"
    PROCUREMENT = "procurement"
    POLICY = "policy"
    INCIDENT = "incident"
    OTHER = "other"


class Level(str, Enum):
    """Three-tier scale used for weight, confidence, influence and priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Severity(str, Enum):
    """Severity of a root cause."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RootCauseCategory(str, Enum):
    """Where a root cause originates."""

    PROCESS = "process"
    PEOPLE = "people"
    TECHNOLOGY = "technology"
    EXTERNAL = "external"
    STRATEGY = "strategy"


class LessonCategory(str, Enum):
    """Area a lesson learned applies to."""

    PROCESS = "process"
    DECISION_MAKING = "decision_making"
    EXECUTION = "execution"
    MONITORING = "monitoring"


class ActionStatus(str, Enum):
    """Progress of a follow-up action item."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Actor(str, Enum):
    """Who performed a decision flow step."""

    AI = "AI"
    HUMAN = "Human"
    SYSTEM = "System"
