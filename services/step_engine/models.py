from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

MIN_STEP = 1
MAX_STEP = 12

DEFAULT_DATE_LABEL = "Date (if known)"
DEFAULT_RIPPLE_EFFECTS_LABEL = "Ripple Effects"

# Catalog models are immutable and serialise with camelCase keys like the progress data
CATALOG_MODEL_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class SectionItem(BaseModel):
    key: str
    prompt: Optional[str] = None
    text: Optional[str] = None
    count: Optional[int] = Field(default=None, ge=1)
    has_date: bool = False
    has_ripple_effects: bool = False
    date_label: str = DEFAULT_DATE_LABEL
    ripple_effects_label: str = DEFAULT_RIPPLE_EFFECTS_LABEL
    checklist_options: List[str] = Field(default_factory=list)
    sub_items: List[str] = Field(default_factory=list)

    model_config = CATALOG_MODEL_CONFIG

    @property
    def label(self) -> str:
        return self.prompt or self.key


class _SectionBase(BaseModel):
    id: str
    title: str
    instruction: Optional[str] = None
    resource_url: Optional[str] = None
    resource_label: Optional[str] = None
    items: List[SectionItem] = Field(default_factory=list)

    model_config = CATALOG_MODEL_CONFIG

    def legacy_key(self, part_number: Optional[int] = None) -> str:
        """Key that older clients derived from type, title and part number."""
        suffix = f"_part{part_number}" if part_number else ""
        return f"{self.type}_{self.title}{suffix}"

    @property
    def checklist_key(self) -> str:
        return f"{self.id}_checklist"

    @property
    def completed_key(self) -> str:
        return f"{self.id}_completed"


class DefinitionsSection(_SectionBase):
    type: Literal["definitions"]


class ReadingSection(_SectionBase):
    type: Literal["reading"]


class WritingSection(_SectionBase):
    type: Literal["writing"]


class ListSection(_SectionBase):
    type: Literal["list"]


class ChecklistSection(_SectionBase):
    # "todo" and "checklist" behave identically
    type: Literal["checklist", "todo"]


class PrayerSection(_SectionBase):
    type: Literal["prayer"]


class ResentmentSection(_SectionBase):
    type: Literal["resentment"]


Section = Annotated[
    Union[
        DefinitionsSection,
        ReadingSection,
        WritingSection,
        ListSection,
        ChecklistSection,
        PrayerSection,
        ResentmentSection,
    ],
    Field(discriminator="type"),
]


class Part(BaseModel):
    part_number: int = Field(..., ge=1)
    title: Optional[str] = None
    # Advisory only: a single assignment date is tracked per step.
    has_assignment_date: bool = False
    sections: List[Section]

    model_config = CATALOG_MODEL_CONFIG


class Step(BaseModel):
    number: int = Field(..., ge=MIN_STEP, le=MAX_STEP)
    title: str
    quote: str
    parts: Optional[List[Part]] = None
    sections: Optional[List[Section]] = None

    model_config = CATALOG_MODEL_CONFIG

    @model_validator(mode="after")
    def _parts_or_sections(self) -> "Step":
        if (self.parts is None) == (self.sections is None):
            raise ValueError(f"Step {self.number} must define either parts or sections, not both or neither.")
        return self

    def iter_sections(self) -> List[tuple]:
        """Ordered (part_number, section) pairs; part_number is None for flat steps."""
        if self.parts is not None:
            return [(part.part_number, section) for part in self.parts for section in part.sections]
        return [(None, section) for section in self.sections or []]


# --- Progress data ---

class WireModel(BaseModel):
    """Base for models persisted/serialised with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ProgressRecord(WireModel):
    id: str
    user_id: str
    step_number: int = Field(..., ge=MIN_STEP, le=MAX_STEP)
    part_number: Optional[int] = None
    assignment_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("assignment_date", "completion_date", "last_updated")
    @classmethod
    def _normalise_tz(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @field_validator("data", mode="before")
    @classmethod
    def _data_default(cls, value: Any) -> Any:
        # Missing or malformed field data is treated as empty
        return value if isinstance(value, dict) else {}

    @staticmethod
    def make_id(user_id: str, step_number: int) -> str:
        return f"{user_id}_step{step_number}"


class ListEntry(WireModel):
    id: str
    content: str = ""
    date: Optional[str] = ""
    ripple_effects: Optional[str] = ""


AFFECTED_DOMAINS = (
    "selfEsteem",
    "pocketbook",
    "ambition",
    "personalRelations",
    "sexualRelations",
    "security",
)


class AffectsMy(WireModel):
    self_esteem: bool = False
    pocketbook: bool = False
    ambition: bool = False
    personal_relations: bool = False
    sexual_relations: bool = False
    security: bool = False


class ResentmentEntry(WireModel):
    id: str
    resentful_at: str = ""
    the_cause: str = ""
    affects_my: AffectsMy = Field(default_factory=AffectsMy)
    my_part: str = ""
    my_fears: str = ""
    sex_review: str = ""

    def is_complete(self) -> bool:
        return bool(self.resentful_at.strip()) and bool(self.the_cause.strip())


# --- Errors ---

class CatalogError(ValueError):
    """Raised when the static step definitions are inconsistent."""
    pass


class StepNotFoundError(LookupError):
    """Raised when a step number does not exist in the catalog."""
    def __init__(self, step_number: Any):
        self.step_number = step_number
        super().__init__(f"Step {step_number} not found.")


class EntryRemovalError(ValueError):
    """Raised when removing an entry would leave a required list empty."""
    pass


class EntryNotFoundError(LookupError):
    """Raised when a list or resentment entry id/index does not exist."""
    pass
