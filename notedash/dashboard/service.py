"""
Dashboard service: wires the store, generators, caches, perspectives,
refresh engine and action bridge together.

Both the CLI and the API build exactly one DashboardService and go
through it.
"""

from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional
import logging

from notedash.core.config import Config
from notedash.core.store import AutoPrompter, DocumentStore, FileDocumentStore, Prompter
from notedash.dashboard.actions import ActionBridge, ActionRequest, HandlerResult
from notedash.dashboard.classifiers import Classifiers
from notedash.dashboard.done_counts import DoneCountCache
from notedash.dashboard.generators import (
    PERIOD_SPECS, CalendarPeriodGenerator, ProjectSectionGenerator, SectionGenerator,
    TimeBlockGenerator,
)
from notedash.dashboard.models import SectionCode
from notedash.dashboard.perspectives import PerspectiveStore
from notedash.dashboard.projects import ProjectReviewSource
from notedash.dashboard.refresh import Notifier, RefreshEngine
from notedash.dashboard.scan_sections import OverdueSectionGenerator, PrioritySectionGenerator
from notedash.dashboard.tag_sections import TagSectionGenerator

logger = logging.getLogger("dashboard.service")


def build_generators(
    store: DocumentStore,
    classifiers: Classifiers,
    done_counts: Optional[DoneCountCache],
    clock: Callable[[], datetime],
    review_source: Optional[ProjectReviewSource] = None,
) -> Dict[SectionCode, SectionGenerator]:
    """One generator per section code"""
    generators: Dict[SectionCode, SectionGenerator] = {
        code: CalendarPeriodGenerator(spec, store, classifiers, done_counts, clock)
        for code, spec in PERIOD_SPECS.items()
    }
    generators[SectionCode.TIMEBLOCK] = TimeBlockGenerator(store, classifiers, clock=clock)
    generators[SectionCode.TAG] = TagSectionGenerator(store, classifiers, clock=clock)
    generators[SectionCode.OVERDUE] = OverdueSectionGenerator(store, classifiers, clock=clock)
    generators[SectionCode.PRIORITY] = PrioritySectionGenerator(store, classifiers, clock=clock)
    generators[SectionCode.PROJECTS] = ProjectSectionGenerator(store, review_source, classifiers, clock)
    return generators


class DashboardService:
    """
    Composition root for the dashboard engine.

    Usage:
        service = DashboardService(Config())
        await service.refresh_all()
        result = await service.handle_action(ActionRequest("completeTask", ...))
    """

    def __init__(
        self,
        config: Config,
        store: Optional[DocumentStore] = None,
        prompter: Optional[Prompter] = None,
        classifiers: Optional[Classifiers] = None,
        clock: Callable[[], datetime] = datetime.now,
        cache_dir: Optional[Path] = None,
        notifier: Optional[Notifier] = None,
        review_source: Optional[ProjectReviewSource] = None,
        use_demo_data: bool = False,
    ):
        self.config = config
        self.store = store or FileDocumentStore(config.get_notes_directory())
        self.prompter = prompter or AutoPrompter()
        self.classifiers = classifiers or Classifiers()
        self.clock = clock
        self.done_counts = DoneCountCache(
            self.store, config, cache_dir or config.get_cache_directory(),
            self.classifiers, clock,
        )
        self.perspectives = PerspectiveStore(config)
        self.generators = build_generators(self.store, self.classifiers, self.done_counts,
                                           clock, review_source)
        self.engine = RefreshEngine(
            self.generators, self.perspectives, self.done_counts, config,
            notifier=notifier, clock=clock, use_demo_data=use_demo_data,
        )
        self.bridge = ActionBridge(
            self.store, self.engine, self.perspectives, config, self.prompter,
            self.done_counts, self.classifiers, clock,
        )
        logger.info(f"Dashboard service ready ({len(self.generators)} section generators)")

    @property
    def state(self):
        return self.engine.state

    def set_notifier(self, notifier: Optional[Notifier]) -> None:
        self.engine.notifier = notifier

    async def refresh_all(self, reason: str = ""):
        return await self.engine.refresh_all(reason)

    async def refresh_some(self, codes):
        return await self.engine.refresh_some(codes)

    async def handle_action(self, request: ActionRequest) -> HandlerResult:
        return await self.bridge.handle(request)

    async def total_done_today(self) -> int:
        total = await self.done_counts.refresh_cache("done count")
        self.engine.state.total_done_count = total
        return total
