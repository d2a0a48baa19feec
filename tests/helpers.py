"""Scripted generation clients and service builders for the tests."""

from typing import Callable, Iterable, List, Optional

from server.models.panel import Faq, Geo, Panel, PanelSegment, Section, UserInput
from server.services.generation import GenerationClient, GenerationError
from server.services.job_service import JobService
from server.services.job_store import JobStore
from server.services.orchestrator import JobOrchestrator
from server.services.persistence import JobPersistence, MemoryJobPersistence


def make_panel(title: str, keywords: Optional[List[str]] = None, summary: str = "Kurzüberblick") -> Panel:
    return Panel(
        slug=title.lower().replace(" ", "-"),
        title=title,
        summary=summary,
        sections=[Section(title="Leistungen", bullets=["Beratung", "Umsetzung"])],
        faqs=[Faq(q="Was kostet das?", a="Auf Anfrage.")],
        keywords=keywords if keywords is not None else ["garten"],
        payload_hash=f"hash-{title}",
    )


class ScriptedClient(GenerationClient):
    """Generation client that succeeds except for the configured topics.

    on_generate and on_segment run before each attempt, which lets tests
    issue control commands while a slot is in flight.
    """

    source_info = "Test"

    def __init__(
            self,
            fail_topics: Iterable[str] = (),
            fail_first_attempts: int = 0,
            on_generate: Callable[[str], None] = None,
            city: str = "Musterstadt",
            fail_segments: Iterable[str] = (),
            on_segment: Callable[[str], None] = None
    ):
        self.fail_topics = set(fail_topics)
        self.fail_first_attempts = fail_first_attempts
        self.on_generate = on_generate
        self.city = city
        self.calls: List[str] = []
        self.excluded: List[List[str]] = []
        self.fail_segments = set(fail_segments)
        self.on_segment = on_segment
        self.segment_calls: List[str] = []

    async def generate(self, user_input, topic, exclude_titles):
        self.calls.append(topic)
        self.excluded.append(list(exclude_titles))
        if self.on_generate is not None:
            self.on_generate(topic)
        if topic in self.fail_topics:
            raise GenerationError(f"backend rejected {topic}")
        if self.calls.count(topic) <= self.fail_first_attempts:
            raise GenerationError(f"temporary failure for {topic}")
        return make_panel(f"{topic} in {self.city}")

    async def regenerate_segment(self, user_input, panel, segment, exclude_titles):
        self.segment_calls.append(PanelSegment(segment).value)
        if self.on_segment is not None:
            self.on_segment(PanelSegment(segment).value)
        if PanelSegment(segment).value in self.fail_segments:
            raise GenerationError(f"backend rejected segment {PanelSegment(segment).value}")
        updated = panel.model_copy(deep=True)
        if PanelSegment(segment) == PanelSegment.SUMMARY:
            updated.summary = "Neue Zusammenfassung"
        return updated


def build_service(
        client: GenerationClient,
        persistence: JobPersistence = None,
        max_retries: int = 2,
        linter_enabled: bool = True
) -> JobService:
    store = JobStore(persistence or MemoryJobPersistence(), debounce_ms=0)
    orchestrator = JobOrchestrator(
        store,
        client,
        max_retries=max_retries,
        initial_backoff_ms=0,
        profiling_delay_ms=0,
        design_init_delay_ms=0,
        linter_enabled=linter_enabled,
    )
    return JobService(store=store, client=client, orchestrator=orchestrator)


def user_input(panel_count: int = 3, topics: Optional[List[str]] = None, **geo) -> UserInput:
    geo.setdefault("company_name", "Gartenbau Müller")
    geo.setdefault("city", "Musterstadt")
    return UserInput(content="Wir pflegen Gärten.", geo=Geo(**geo), panel_count=panel_count, topics=topics)


async def run_to_end(service: JobService, job_id: str):
    await service.orchestrator.wait(job_id)
    return service.get_status(job_id)
