"""
Evolution Extractor - the "problem to final version" storyline.

Classification is driven by an explicit rule table (one EvolutionRule per
milestone) rather than by code branches, so keyword lists can be changed
through settings and tested on their own.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from pydantic import BaseModel

from teamhub.config import Settings, get_settings
from teamhub.engines.timemachine.aggregation import sort_events
from teamhub.kernel.events.event_types import EventRecord
from teamhub.kernel.models.event_log import EventCategory


class Milestone(str, Enum):
    PROBLEM = "problem"
    RESEARCH = "research"
    SOLUTION = "solution"
    FAILURE = "failure"
    IMPROVEMENT = "improvement"
    FINAL = "final"


MILESTONE_LABELS: Dict[Milestone, str] = {
    Milestone.PROBLEM: "Problem",
    Milestone.RESEARCH: "Research",
    Milestone.SOLUTION: "Solution",
    Milestone.FAILURE: "Failure",
    Milestone.IMPROVEMENT: "Improvement",
    Milestone.FINAL: "Final version",
}


@dataclass(frozen=True)
class EvolutionRule:
    """
    One row of the classification table.

    An event matches when
      - its category is in section_categories and metadata.section is in
        sections, or
      - its category is in categories and, when the rule has keywords or a
        failure flag, the title contains a keyword (case-insensitive) or
        metadata.success is False.

    Rules with derived_from do not scan events; they reuse the matches of
    another milestone and only apply once there are at least min_matches.
    """

    milestone: Milestone
    title: str
    categories: FrozenSet[EventCategory] = frozenset()
    keywords: Sequence[str] = ()
    sections: FrozenSet[str] = frozenset()
    section_categories: FrozenSet[EventCategory] = frozenset()
    failure_flag: bool = False
    # "{count}" is replaced with the number of matches; None keeps the
    # representative event's own description
    summary: Optional[str] = None
    derived_from: Optional[Milestone] = None
    min_matches: int = 1
    use_last: bool = False
    # Relate only the representative instead of every match
    representative_only: bool = False

    def matches(self, event: EventRecord) -> bool:
        section = event.metadata_value("section")
        if (
            isinstance(section, str)
            and event.event_category in self.section_categories
            and section in self.sections
        ):
            return True

        if event.event_category not in self.categories:
            return False
        if not self.keywords and not self.failure_flag:
            return True

        title = event.title.lower()
        if any(keyword.lower() in title for keyword in self.keywords):
            return True
        return self.failure_flag and event.metadata_value("success") is False


def default_rules(settings: Optional[Settings] = None) -> List[EvolutionRule]:
    """Rule table built from the configured keyword lists."""
    settings = settings or get_settings()
    innovation = frozenset({EventCategory.INNOVATION})

    return [
        EvolutionRule(
            milestone=Milestone.PROBLEM,
            title="Problem identified",
            categories=innovation,
            keywords=tuple(settings.evolution_problem_keywords),
            sections=frozenset({"problem"}),
            section_categories=innovation,
        ),
        EvolutionRule(
            milestone=Milestone.RESEARCH,
            title="Research carried out",
            categories=innovation,
            keywords=tuple(settings.evolution_research_keywords),
            sections=frozenset({"research_sources", "expert_conversations"}),
            section_categories=innovation,
            summary="{count} sources consulted",
        ),
        EvolutionRule(
            milestone=Milestone.SOLUTION,
            title="First version of the solution",
            categories=frozenset({EventCategory.PROTOTYPE}),
            sections=frozenset({"prototyping"}),
            section_categories=innovation,
            representative_only=True,
        ),
        EvolutionRule(
            milestone=Milestone.FAILURE,
            title="Failures found",
            categories=frozenset({EventCategory.TEST}),
            keywords=tuple(settings.evolution_failure_keywords),
            failure_flag=True,
            summary="{count} test(s) with failures",
        ),
        EvolutionRule(
            milestone=Milestone.IMPROVEMENT,
            title="Improvements implemented",
            categories=frozenset({EventCategory.ITERATION}),
            sections=frozenset({"solution_evolution"}),
            section_categories=innovation,
            summary="{count} iteration(s)",
        ),
        EvolutionRule(
            milestone=Milestone.FINAL,
            title="Final version",
            derived_from=Milestone.SOLUTION,
            min_matches=2,
            use_last=True,
        ),
    ]


class EvolutionStep(BaseModel):
    milestone: Milestone
    label: str
    title: str
    description: Optional[str] = None
    date: datetime
    representative_id: uuid.UUID
    related_event_ids: List[uuid.UUID]

    @property
    def related_count(self) -> int:
        return len(self.related_event_ids)


def classify(
    events: Iterable[EventRecord],
    rules: Sequence[EvolutionRule],
) -> Dict[Milestone, List[EventRecord]]:
    """Matches per milestone, oldest first. Derived rules are not evaluated here."""
    ordered = sort_events(events)
    return {
        rule.milestone: [e for e in ordered if rule.matches(e)]
        for rule in rules
        if rule.derived_from is None
    }


def extract_evolution(
    events: Iterable[EventRecord],
    rules: Optional[Sequence[EvolutionRule]] = None,
) -> List[EvolutionStep]:
    """
    Build the evolution timeline.

    Each milestone with at least one match contributes one step, represented
    by its first match (or last, for use_last rules). Steps come back in
    chronological order of their representatives.
    """
    rules = list(rules) if rules is not None else default_rules()
    matched = classify(events, rules)
    steps: List[EvolutionStep] = []

    for rule in rules:
        if rule.derived_from is not None:
            candidates = matched.get(rule.derived_from, [])
        else:
            candidates = matched.get(rule.milestone, [])
        if len(candidates) < max(rule.min_matches, 1):
            continue

        representative = candidates[-1] if rule.use_last else candidates[0]
        if rule.derived_from is not None or rule.representative_only:
            related = [representative]
        else:
            related = candidates
        description = (
            rule.summary.format(count=len(candidates))
            if rule.summary is not None
            else representative.description
        )
        steps.append(
            EvolutionStep(
                milestone=rule.milestone,
                label=MILESTONE_LABELS[rule.milestone],
                title=rule.title,
                description=description,
                date=representative.created_at,
                representative_id=representative.id,
                related_event_ids=[e.id for e in related],
            )
        )

    # Stable: equal dates keep rule-table order
    return sorted(steps, key=lambda s: s.date)


@dataclass
class EvolutionStats:
    iterations: int = 0
    tests: int = 0
    prototypes: int = 0
    feedbacks: int = 0
    by_category: Dict[EventCategory, int] = field(default_factory=dict)


def evolution_stats(events: Iterable[EventRecord]) -> EvolutionStats:
    """Counts shown under the evolution timeline."""
    stats = EvolutionStats()
    for event in events:
        category = event.event_category
        stats.by_category[category] = stats.by_category.get(category, 0) + 1
        if category == EventCategory.ITERATION:
            stats.iterations += 1
        elif category == EventCategory.TEST:
            stats.tests += 1
        elif category == EventCategory.PROTOTYPE:
            stats.prototypes += 1
        elif category == EventCategory.FEEDBACK:
            stats.feedbacks += 1
    return stats
