# services/generation.py

"""
Generation client boundary - produces panel content for a topic
"""

import asyncio
import hashlib
import logging
import re
from typing import List

from server.core.config import settings
from server.models.panel import Panel, PanelSegment, Section, Faq, UserInput

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """The generation backend could not produce a panel"""


class GenerationClient:
    """Interface of the content generation backend"""

    source_info = "unknown"

    async def generate(self, user_input: UserInput, topic: str, exclude_titles: List[str]) -> Panel:
        raise NotImplementedError

    async def regenerate_segment(
            self,
            user_input: UserInput,
            panel: Panel,
            segment: PanelSegment,
            exclude_titles: List[str]
    ) -> Panel:
        raise NotImplementedError


def _slugify(text: str) -> str:
    return re.sub(r"\s+", "-", text.strip().lower())


class MockGenerationClient(GenerationClient):
    """Deterministic dummy panels, used when no live backend is configured"""

    source_info = "Mock Data"

    def __init__(self, latency_ms: int = 0):
        self.latency_ms = latency_ms
        self.calls = 0

    async def _simulate_latency(self):
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)

    async def generate(self, user_input: UserInput, topic: str, exclude_titles: List[str]) -> Panel:
        await self._simulate_latency()
        self.calls += 1

        geo = user_input.geo
        title = f"{topic} in {geo.city}" if geo.city else topic
        if title in exclude_titles:
            title = f"{title} ({len(exclude_titles) + 1})"

        payload_hash = hashlib.sha1(f"{self.calls}:{title}".encode("utf-8")).hexdigest()[:12]
        return Panel(
            slug=f"mock-panel-{_slugify(title)}",
            title=title,
            kind="accordion",
            summary=f"Dies ist eine Mock-Zusammenfassung für {topic}, speziell für {geo.company_name} in {geo.city}.",
            sections=[Section(title="Mock-Abschnitt", bullets=["Stichpunkt 1", "Stichpunkt 2"])],
            faqs=[Faq(q="Mock-Frage?", a="Mock-Antwort.")],
            keywords=["mock", topic, geo.city] if geo.city else ["mock", topic],
            sources=[],
            payload_hash=f"mock-hash-{payload_hash}",
        )

    async def regenerate_segment(
            self,
            user_input: UserInput,
            panel: Panel,
            segment: PanelSegment,
            exclude_titles: List[str]
    ) -> Panel:
        await self._simulate_latency()
        self.calls += 1

        segment = PanelSegment(segment)
        updated = panel.model_copy(deep=True)
        if segment == PanelSegment.TITLE:
            updated.title = f"{panel.title} - neu"
        elif segment == PanelSegment.SUMMARY:
            updated.summary = f"{panel.summary} (überarbeitet)"
        elif segment == PanelSegment.SECTIONS:
            updated.sections = [Section(title="Neuer Abschnitt", bullets=["Stichpunkt A", "Stichpunkt B"])]
        elif segment == PanelSegment.FAQ:
            updated.faqs = [Faq(q="Neue Frage?", a="Neue Antwort.")]
        elif segment == PanelSegment.KEYWORDS:
            updated.keywords = list(dict.fromkeys(panel.keywords + ["neu"]))
        return updated


def create_generation_client(mode: str = None) -> GenerationClient:
    mode = mode or settings.generation_mode
    if mode == "mock":
        return MockGenerationClient()
    raise ValueError(f"Unknown generation mode: {mode}")
