# lifemate/services/resume_renderer.py
"""
Resume -> PDF.

Rendering happens in three steps:

1. `build_blocks` turns a resume into blocks of measured items (text lines,
   rules, gaps, rows of skill badges). All text measuring and wrapping
   happens here.
2. `paginate` assigns items to pages. It is pure: a block that does not fit
   in the space left starts a new page, a section header moves with the
   first block of its section, and a block taller than a page is split
   between items.
3. `draw_pages` paints the pages onto a reportlab canvas.
"""
import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from lifemate.core.errors import ValidationFailedError
from lifemate.models.resume import Resume, ResumeContent, Styling

logger = logging.getLogger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN_TOP = 50
MARGIN_BOTTOM = 50
MARGIN_LEFT = 60
MARGIN_RIGHT = 60
FRAME_WIDTH = PAGE_WIDTH - MARGIN_LEFT - MARGIN_RIGHT
FRAME_HEIGHT = PAGE_HEIGHT - MARGIN_TOP - MARGIN_BOTTOM

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_ITALIC = "Helvetica-Oblique"

BADGE_HEIGHT = 18
BADGE_PADDING = 10
BADGE_SPACING = 8
BADGE_ROW_HEIGHT = 26
BADGE_FONT_SIZE = 9

MUTED = "#666666"
BODY = "#333333"
HIGHLIGHT = "#D2691E"
LINK = "#0066CC"


# --- items -----------------------------------------------------------------

@dataclass(frozen=True)
class Line:
    text: str
    font: str = FONT
    size: float = 9
    color: str = BODY
    right_text: Optional[str] = None
    link: Optional[str] = None

    @property
    def height(self) -> float:
        return self.size * 1.4


@dataclass(frozen=True)
class Rule:
    color: str = "#E0E0E0"
    thickness: float = 0.5

    @property
    def height(self) -> float:
        return 4


@dataclass(frozen=True)
class Gap:
    height: float


@dataclass(frozen=True)
class BadgeRow:
    labels: Tuple[str, ...]

    @property
    def height(self) -> float:
        return BADGE_ROW_HEIGHT


Item = Union[Line, Rule, Gap, BadgeRow]


@dataclass
class Block:
    items: List[Item] = field(default_factory=list)
    keep_with_next: bool = False

    @property
    def height(self) -> float:
        return sum(item.height for item in self.items)


# --- pagination --------------------------------------------------------------

def paginate(blocks: Sequence[Block], frame_height: float = FRAME_HEIGHT) -> List[List[Item]]:
    pages: List[List[Item]] = [[]]
    remaining = frame_height

    def new_page():
        nonlocal remaining
        pages.append([])
        remaining = frame_height

    for index, block in enumerate(blocks):
        if not block.items:
            continue
        needed = block.height
        if block.keep_with_next:
            following = next((b for b in blocks[index + 1:] if b.items), None)
            if following is not None:
                # the whole next block when it fits on a page, else its first item
                extra = following.height if following.height <= frame_height - block.height else following.items[0].height
                needed += extra

        if needed > remaining and pages[-1]:
            new_page()

        if block.height <= remaining:
            pages[-1].extend(block.items)
            remaining -= block.height
            continue

        # taller than a page: split between items
        for item in block.items:
            if item.height > remaining and pages[-1]:
                new_page()
                if isinstance(item, Gap):
                    continue
            pages[-1].append(item)
            remaining -= item.height

    return pages


# --- helpers -----------------------------------------------------------------

def format_date(value) -> str:
    """'Mon YYYY'; a missing date means the entry is still ongoing."""
    if not value:
        return "Present"
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, (datetime, date)):
        return value.strftime("%b %Y")
    return str(value)


def wrap(text: str, font: str, size: float, width: float = FRAME_WIDTH, color: str = BODY) -> List[Line]:
    lines = []
    for paragraph in str(text).splitlines() or [""]:
        for chunk in simpleSplit(paragraph, font, size, width) or [""]:
            lines.append(Line(chunk, font=font, size=size, color=color))
    return lines


def layout_badges(labels: Iterable[str], width: float = FRAME_WIDTH) -> List[Tuple[str, ...]]:
    """Group skill labels into rows that fit `width` at badge font size."""
    rows: List[List[str]] = [[]]
    x = 0.0
    for label in labels:
        badge = stringWidth(label, FONT, BADGE_FONT_SIZE) + BADGE_PADDING * 2
        if rows[-1] and x + badge > width:
            rows.append([])
            x = 0.0
        rows[-1].append(label)
        x += badge + BADGE_SPACING
    return [tuple(r) for r in rows if r]


def _visible(entries):
    return [e for e in entries or [] if e.is_visible]


def _shorten_profile(url: str) -> str:
    return (
        url.replace("https://linkedin.com/in/", "linkedin.com/")
        .replace("https://www.linkedin.com/in/", "linkedin.com/")
        .replace("https://github.com/", "github.com/")
    )


def _section_header(title: str, accent: str) -> Block:
    return Block(
        items=[Gap(6), Rule(), Gap(4), Line(title.upper(), font=FONT_BOLD, size=11, color=accent), Gap(4)],
        keep_with_next=True,
    )


# --- blocks ------------------------------------------------------------------

def build_blocks(resume: Union[Resume, ResumeContent]) -> List[Block]:
    info = resume.personal_info
    if info is None or not (info.full_name or "").strip():
        raise ValidationFailedError.for_field(
            "personal_info.full_name", "Personal info with full name is required to generate PDF"
        )

    styling = resume.styling or Styling()
    primary = styling.primary_color
    accent = styling.accent_color
    body_size = styling.font_size or 10

    blocks: List[Block] = []

    header = Block(items=wrap(info.full_name.strip(), FONT_BOLD, 26, color="#000000"))
    contact = [info.email, info.phone, info.linkedin and _shorten_profile(info.linkedin),
               info.github and _shorten_profile(info.github), info.website]
    contact = [c for c in contact if c]
    if contact:
        header.items.append(Gap(2))
        header.items.extend(wrap(" • ".join(contact), FONT, 9, color=MUTED))
    header.items.extend([Gap(4), Rule(color="#CCCCCC", thickness=1), Gap(4)])
    blocks.append(header)

    if resume.summary and resume.summary.strip():
        blocks.append(_section_header("Professional Summary", accent))
        blocks.append(Block(items=wrap(resume.summary.strip(), FONT, body_size, color=primary) + [Gap(4)]))

    experience = _visible(resume.work_experience)
    if experience:
        blocks.append(_section_header("Work Experience", accent))
        for n, exp in enumerate(experience):
            end = "Present" if exp.is_current else format_date(exp.end_date)
            items: List[Item] = [
                Line(exp.position or "Position", font=FONT_BOLD, size=10, color="#000000",
                     right_text=f"{format_date(exp.start_date)} - {end}"),
                Line(exp.company or "Company", size=9, color=HIGHLIGHT),
            ]
            if exp.location:
                items.append(Line(exp.location, size=9, color=MUTED))
            if exp.description:
                items.extend(wrap(exp.description, FONT, 9))
            for achievement in exp.achievements:
                items.extend(wrap(f"• {achievement}", FONT, 9))
            if n < len(experience) - 1:
                items.append(Gap(8))
            blocks.append(Block(items=items))

    education = _visible(resume.education)
    if education:
        blocks.append(_section_header("Education", accent))
        for n, edu in enumerate(education):
            title = " in ".join(p for p in (edu.degree, edu.field) if p) or "Education"
            items = wrap(title, FONT_BOLD, 10, color="#000000")
            if edu.institution:
                items.append(Line(edu.institution, size=9, color=HIGHLIGHT))
            if edu.year_of_completion:
                items.append(Line(str(edu.year_of_completion), size=9, color=MUTED))
            if edu.grade:
                items.append(Line(f"Grade: {edu.grade}", size=9, color=MUTED))
            if n < len(education) - 1:
                items.append(Gap(6))
            blocks.append(Block(items=items))

    skills = _visible(resume.skills)
    if skills:
        blocks.append(_section_header("Skills", accent))
        rows = layout_badges(s.name for s in skills)
        blocks.append(Block(items=[BadgeRow(row) for row in rows]))

    projects = _visible(resume.projects)
    if projects:
        blocks.append(_section_header("Projects", accent))
        for n, proj in enumerate(projects):
            items = wrap(proj.title, FONT_BOLD, 10, color=primary)
            if proj.technologies:
                items.extend(wrap(", ".join(proj.technologies), FONT_ITALIC, 9))
            if proj.url:
                items.append(Line(proj.url, font=FONT_BOLD, size=9, color=LINK, link=proj.url))
            if proj.description:
                items.extend(wrap(f"• {proj.description}", FONT, 9, color=primary))
            if n < len(projects) - 1:
                items.append(Gap(6))
            blocks.append(Block(items=items))

    custom = _visible(resume.custom_sections)
    if custom:
        blocks.append(_section_header("Extracurricular and Achievements", accent))
        for section in custom:
            entries = section.items or ([section.content] if section.content else [])
            items = []
            for entry in entries:
                items.extend(wrap(f"• {entry}", FONT, 9, color=primary))
            if items:
                blocks.append(Block(items=items))

    certifications = _visible(resume.certifications)
    if certifications:
        blocks.append(_section_header("Certifications", accent))
        for n, cert in enumerate(certifications):
            items = wrap(f"• {cert.name}", FONT_BOLD, 10, color="#000000")
            if cert.issuing_organization:
                items.append(Line(f"  {cert.issuing_organization}", size=9, color=HIGHLIGHT))
            dates = []
            if cert.issue_date:
                dates.append(f"Issued: {format_date(cert.issue_date)}")
            if cert.expiry_date:
                dates.append(f"Expires: {format_date(cert.expiry_date)}")
            if dates:
                items.append(Line("  " + " | ".join(dates), size=8, color=MUTED))
            if cert.credential_id:
                items.append(Line(f"  ID: {cert.credential_id}", size=8, color=MUTED))
            if n < len(certifications) - 1:
                items.append(Gap(6))
            blocks.append(Block(items=items))

    languages = _visible(resume.languages)
    if languages:
        blocks.append(_section_header("Languages", accent))
        text = ", ".join(f"{lang.name} ({lang.proficiency})" if lang.proficiency else lang.name for lang in languages)
        blocks.append(Block(items=wrap(text, FONT, 9, color=primary)))

    return blocks


# --- drawing -------------------------------------------------------------------

def _color(value: str, default: str):
    try:
        return colors.HexColor(value)
    except (ValueError, TypeError):
        return colors.HexColor(default)


def _draw_item(c: canvas.Canvas, item: Item, top: float) -> None:
    if isinstance(item, Line):
        baseline = top - item.size
        c.setFont(item.font, item.size)
        c.setFillColor(_color(item.color, BODY))
        c.drawString(MARGIN_LEFT, baseline, item.text)
        if item.link:
            width = stringWidth(item.text, item.font, item.size)
            c.linkURL(item.link, (MARGIN_LEFT, baseline - 2, MARGIN_LEFT + width, baseline + item.size), relative=0)
        if item.right_text:
            c.setFont(FONT, 9)
            c.setFillColor(_color(MUTED, MUTED))
            c.drawRightString(PAGE_WIDTH - MARGIN_RIGHT, baseline, item.right_text)
    elif isinstance(item, Rule):
        y = top - item.height / 2
        c.setStrokeColor(_color(item.color, "#E0E0E0"))
        c.setLineWidth(item.thickness)
        c.line(MARGIN_LEFT, y, PAGE_WIDTH - MARGIN_RIGHT, y)
    elif isinstance(item, BadgeRow):
        x = MARGIN_LEFT
        c.setFont(FONT, BADGE_FONT_SIZE)
        for label in item.labels:
            width = stringWidth(label, FONT, BADGE_FONT_SIZE) + BADGE_PADDING * 2
            c.setFillColor(_color("#E8E8E8", "#E8E8E8"))
            c.setStrokeColor(_color("#E8E8E8", "#E8E8E8"))
            c.roundRect(x, top - BADGE_HEIGHT, width, BADGE_HEIGHT, 4, stroke=1, fill=1)
            c.setFillColor(_color(BODY, BODY))
            c.drawString(x + BADGE_PADDING, top - BADGE_HEIGHT + 5, label)
            x += width + BADGE_SPACING


def draw_pages(pages: List[List[Item]], title: str = "Resume") -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(title)
    c.setAuthor("LifeMate")
    for page in pages:
        top = PAGE_HEIGHT - MARGIN_TOP
        for item in page:
            _draw_item(c, item, top)
            top -= item.height
        c.showPage()
    c.save()
    return buf.getvalue()


def render_resume_pdf(resume: Union[Resume, ResumeContent]) -> bytes:
    """Render a resume to PDF bytes. Raises ValidationFailedError without a full name."""
    blocks = build_blocks(resume)
    pages = paginate(blocks)
    logger.debug("Rendering resume %r on %d page(s)", resume.title, len(pages))
    return draw_pages(pages, title=f"{resume.personal_info.full_name} - {resume.title}")
