# models/panel.py

"""
Panel content and user input models
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from enum import Enum


class InputType(str, Enum):
    TEXT = "Text"
    URL = "URL"
    JSON = "JSON"


class Tone(str, Enum):
    NEUTRAL = "neutral"
    WERBLICH = "werblich"
    FACHLICH = "fachlich"
    FREUNDLICH = "freundlich"


class ContentDepth(str, Enum):
    COMPACT = "kompakt"
    STANDARD = "standard"
    DETAILED = "detailliert"


class PanelSegment(str, Enum):
    TITLE = "title"
    SUMMARY = "summary"
    SECTIONS = "sections"
    FAQ = "faq"
    KEYWORDS = "keywords"


class Geo(BaseModel):
    company_name: str = ""
    branch: str = ""
    street: str = ""
    city: str = ""
    zip: str = ""
    region: str = ""
    slug: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    top_answer: str = ""
    key_facts: List[str] = []


class UserInput(BaseModel):
    input_type: InputType = Field(InputType.TEXT, description="How the business description is supplied")
    content: str = Field("", description="Business description")
    geo: Geo = Field(default_factory=Geo)
    tone: Tone = Tone.NEUTRAL
    panel_count: int = Field(3, ge=1, le=12, description="Number of panels to generate")
    content_depth: ContentDepth = ContentDepth.STANDARD
    keep_design: bool = Field(False, description="Reuse design tokens of the previous job")
    topics: Optional[List[str]] = Field(None, description="Explicit topic per panel slot")


class Section(BaseModel):
    title: str
    bullets: List[str] = []


class Faq(BaseModel):
    q: str
    a: str


class Panel(BaseModel):
    slug: str = ""
    title: str
    kind: str = "accordion"
    summary: str = ""
    sections: List[Section] = []
    faqs: List[Faq] = []
    keywords: List[str] = []
    sources: List[Dict[str, Any]] = []
    payload_hash: str = ""
