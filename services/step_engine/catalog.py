import logging
import random
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from . import definitions
from .models import MAX_STEP, MIN_STEP, CatalogError, Step, StepNotFoundError

logger = logging.getLogger(__name__)

_STEP_LIST = TypeAdapter(List[Step])


class StepCatalog:
    """
    Read-only catalog of workbook steps.

    Validates the raw step definitions once at construction and serves lookups
    by step number for the rest of the process lifetime.
    """
    def __init__(self, raw_steps: Optional[Sequence[Dict[str, Any]]] = None):
        """
        Args:
            raw_steps: Step definitions to load. Defaults to the bundled workbook.
        """
        raw_steps = definitions.STEPS if raw_steps is None else raw_steps
        try:
            self._steps = _STEP_LIST.validate_python(list(raw_steps))
        except ValidationError as e:
            raise CatalogError(f"Invalid step definitions: {e}") from e
        self._validate_unique_ids()
        self._build_lookup_maps()
        logger.debug(f"Step catalog loaded with {len(self._steps)} steps.")

    def _validate_unique_ids(self):
        """Checks step numbers, part numbers and section ids for duplicates."""
        numbers = set()
        for step in self._steps:
            if step.number in numbers:
                raise CatalogError(f"Duplicate step number found: {step.number}")
            numbers.add(step.number)

            part_numbers = set()
            for part in step.parts or []:
                if part.part_number in part_numbers:
                    raise CatalogError(f"Duplicate part number {part.part_number} in step {step.number}")
                part_numbers.add(part.part_number)

            section_ids = set()
            for _, section in step.iter_sections():
                if section.id in section_ids:
                    raise CatalogError(f"Duplicate section id '{section.id}' in step {step.number}")
                section_ids.add(section.id)

    def _build_lookup_maps(self):
        self._steps = sorted(self._steps, key=lambda s: s.number)
        self._by_number = {step.number: step for step in self._steps}

    def steps(self) -> List[Step]:
        return list(self._steps)

    def get_step(self, step_number: Any) -> Optional[Step]:
        """Returns the step, or None for anything that is not a known step number."""
        if isinstance(step_number, bool) or not isinstance(step_number, int):
            return None
        if not MIN_STEP <= step_number <= MAX_STEP:
            return None
        return self._by_number.get(step_number)

    def require_step(self, step_number: Any) -> Step:
        step = self.get_step(step_number)
        if step is None:
            raise StepNotFoundError(step_number)
        return step

    def step_title(self, step_number: Any) -> str:
        step = self.get_step(step_number)
        return f"Step {step_number}: {step.title}" if step else f"Step {step_number}"

    def prayer_text(self, step_number: int) -> Optional[str]:
        return definitions.PRAYER_TEXT_BY_STEP.get(step_number)


@lru_cache(maxsize=1)
def get_catalog() -> StepCatalog:
    """Process-wide catalog instance."""
    return StepCatalog()


def random_encouragement(step_number: Optional[int] = None, rng: Optional[random.Random] = None) -> str:
    """
    Picks an encouragement message, preferring step-specific ones when a
    step number is given.
    """
    rng = rng or random
    messages = definitions.STEP_ENCOURAGEMENTS.get(step_number) or definitions.ENCOURAGEMENT_MESSAGES
    return rng.choice(messages)
