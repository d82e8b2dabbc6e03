"""
Translation rules learned from feedback or written by hand.

The compiler only ever sees active rules. Rules are deactivated by admin
review, never hard-deleted.
"""

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True, slots=True)
class TranslationRule:
    """A natural-language pattern and the query syntax it stands for."""

    pattern: str
    scryfall_syntax: str
    id: str | None = None
    description: str | None = None
    scryfall_templates: tuple[str, ...] = ()
    aliases: tuple[str, ...] = ()
    confidence: float = 0.8
    priority: int = 0
    category: str | None = None
    is_active: bool = True
    source_feedback_id: str | None = None

    @property
    def phrases(self) -> tuple[str, ...]:
        """The pattern followed by every alias."""
        return (self.pattern, *self.aliases)


@dataclass(frozen=True, slots=True)
class RuleProposal:
    """A rule suggested by synthesis, before it is persisted."""

    pattern: str
    scryfall_syntax: str
    description: str
    confidence: float
    aliases: tuple[str, ...] = field(default=())


class RuleResponse(BaseModel):
    """A rule as shown in the admin surface."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    pattern: str
    scryfall_syntax: str = Field(..., alias="scryfallSyntax")
    description: str | None = None
    aliases: list[str] = Field(default_factory=list)
    confidence: float
    priority: int
    category: str | None = None
    is_active: bool = Field(..., alias="isActive")
    source_feedback_id: str | None = Field(default=None, alias="sourceFeedbackId")


class RuleActivationRequest(BaseModel):
    """Body of ``PATCH /admin/rules/{id}``."""

    model_config = ConfigDict(populate_by_name=True)

    is_active: bool = Field(..., alias="isActive")


class StatusResponse(BaseModel):
    """Admin action acknowledgement."""

    status: str
