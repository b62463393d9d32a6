"""Structure Preserver — turns page markup into marker-annotated text for the LLM.

Each transform takes HTML and returns HTML (the last one returns plain text),
so every step can be exercised on its own. ``PIPELINE`` fixes their order.
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, Comment

log = logging.getLogger(__name__)

# Removed together with their contents
_NOISE_TAGS = [
    "script", "style", "noscript", "iframe", "object", "embed",
    "form", "input", "button", "select", "textarea", "hr", "img",
]

_HEADING_TAG_RE = re.compile(r"^h[1-6]$")
_QUESTION_HEADING_RE = re.compile(r"^h[2-6]$")
_HEADING_MARKER_RE = re.compile(r"## \[(.+?)\] ##")

_TESTIMONIAL_CLASS_RE = re.compile(
    r"testimonial|review|client-quote|client-feedback|customer-review|customer-feedback"
    r"|quote-box|quote-card|feedback-item|testimonial-item|review-item|rating-box|star-rating",
    re.IGNORECASE,
)
_SLIDE_CLASS_RE = re.compile(r"swiper-slide|slick-slide", re.IGNORECASE)
_SLIDE_HINT_RE = re.compile(r"testimonial|review|quote", re.IGNORECASE)
_AUTHOR_CLASS_RE = re.compile(
    r"author|name|client-name|reviewer|testimonial-name|review-author", re.IGNORECASE
)
_NAME_CLASS_RE = re.compile(r"name", re.IGNORECASE)
_TESTIMONIAL_TEXT_CLASS_RE = re.compile(
    r"testimonial-content|review-text|quote-text|testimonial-text|feedback-text"
    r"|review-content|testimonial-description",
    re.IGNORECASE,
)
_TEXTISH_CLASS_RE = re.compile(r"content|text|quote", re.IGNORECASE)
_FILLED_STAR_RE = re.compile(
    r"star-filled|fas fa-star|icon-star-full|star active|rating-star--filled", re.IGNORECASE
)
_RATING_TEXT_RE = re.compile(r"(\d(?:\.\d)?)\s*(?:/\s*5|out of 5|stars?)", re.IGNORECASE)
_DATA_RATING_RE = re.compile(r"^[0-9.]+$")

_FAQ_CLASS_RE = re.compile(
    r"faq-item|accordion-item|question-answer|qa-item|faq-entry"
    r"|elementor-accordion-item|elementor-toggle-item",
    re.IGNORECASE,
)
_QUESTION_CLASS_RE = re.compile(
    r"question|faq-question|accordion-title|toggle-title|accordion-header", re.IGNORECASE
)
_ANSWER_CLASS_RE = re.compile(
    r"answer|faq-answer|accordion-content|toggle-content|accordion-body|accordion-panel",
    re.IGNORECASE,
)

_REGION_TAGS = ("section", "article", "aside", "nav", "footer", "header")
_USEFUL_URL_RE = re.compile(r"^(mailto:|tel:|https?://)", re.IGNORECASE)


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _text(tag) -> str:
    """Visible text of ``tag`` on a single line."""
    return " ".join(tag.get_text(" ").split())


def _detached(tag) -> bool:
    """True once ``tag`` (or an ancestor) has been replaced out of the document."""
    if tag.decomposed:
        return True
    for parent in tag.parents:
        if isinstance(parent, BeautifulSoup):
            return False
    return True


def _is_wrapper(tag, pattern) -> bool:
    """True when ``tag`` holds several same-class matches with real text, i.e. a list of items."""
    seen = set()
    for child in tag.find_all(class_=pattern):
        if len(_text(child)) <= 20:
            continue
        key = tuple(child.get("class") or ())
        if key in seen:
            return True
        seen.add(key)
    return False


# --- 1. noise ---

def strip_noise(html: str) -> str:
    """Drop scripts, styles, comments and interactive or embedded elements."""
    soup = _soup(html)
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for tag in soup.find_all(_NOISE_TAGS):
        if not tag.decomposed:
            tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    return str(soup)


# --- 2. headings ---

def mark_headings(html: str) -> str:
    soup = _soup(html)
    for heading in soup.find_all(_HEADING_TAG_RE):
        if _detached(heading):
            continue
        text = _text(heading)
        if text:
            heading.replace_with(f"\n\n## [{text}] ##\n\n")
        else:
            heading.decompose()
    return str(soup)


# --- 3. lists ---

def mark_lists(html: str) -> str:
    soup = _soup(html)
    # Innermost items first so nested lists flatten into their parent item
    for item in reversed(soup.find_all("li")):
        text = re.sub(r"[ \t]+", " ", item.get_text()).strip()
        item.replace_with(f"- {text}\n")
    for lst in soup.find_all(["ul", "ol"]):
        if _detached(lst):
            continue
        label = "NUMBERED LIST" if lst.name == "ol" else "LIST"
        lst.insert_before(f"\n[{label} START]\n")
        lst.insert_after(f"[{label} END]\n")
        lst.unwrap()
    return str(soup)


# --- 4. testimonials ---

def extract_testimonial_author(tag) -> str:
    """Author name from the first matching pattern, under 100 chars."""
    candidates = (
        tag.find(class_=_AUTHOR_CLASS_RE),
        tag.find("cite"),
        tag.find("strong", class_=_NAME_CLASS_RE),
        tag.find("span", class_=_NAME_CLASS_RE),
    )
    for candidate in candidates:
        if candidate is None:
            continue
        author = _text(candidate)
        if author and len(author) < 100:
            return author
    return ""


def extract_star_rating(tag) -> str:
    """Rating as ``"X/5"`` or ``"N/5 stars"``; empty when nothing found."""
    rated = tag if tag.has_attr("data-rating") else tag.find(attrs={"data-rating": True})
    if rated is not None and _DATA_RATING_RE.match(str(rated["data-rating"])):
        return f"{rated['data-rating']}/5"

    filled = len(_FILLED_STAR_RE.findall(str(tag)))
    if 0 < filled <= 5:
        return f"{filled}/5 stars"

    match = _RATING_TEXT_RE.search(tag.get_text(" "))
    if match:
        return f"{match.group(1)}/5"
    return ""


def extract_testimonial_text(tag) -> str:
    candidates = (
        tag.find(class_=_TESTIMONIAL_TEXT_CLASS_RE),
        tag.find("p", class_=_TEXTISH_CLASS_RE),
        tag.find("blockquote"),
    )
    for candidate in candidates:
        if candidate is None:
            continue
        text = _text(candidate)
        if len(text) > 20:
            return text

    stripped = _text(tag)
    if len(stripped) > 30:
        author = extract_testimonial_author(tag)
        if author:
            stripped = " ".join(stripped.replace(author, "").split())
        return stripped
    return ""


def format_testimonial(tag) -> str:
    """Marker block for a testimonial element, or "" when it has no quote."""
    text = extract_testimonial_text(tag)
    if not text:
        return ""
    author = extract_testimonial_author(tag)
    rating = extract_star_rating(tag)

    marker = f"\n[TESTIMONIAL START]\nQuote: {text}\n"
    if author:
        marker += f"Author: {author}\n"
    if rating:
        marker += f"Rating: {rating}\n"
    return marker + "[TESTIMONIAL END]\n"


def format_quote(tag) -> str:
    """Marker block for a ``<blockquote>``, or "" when it is too short to matter."""
    text = _text(tag)
    if len(text) <= 20:
        return ""
    attribution = tag.find("cite") or tag.find("footer")
    marker = f"\n[QUOTE START]\nText: {text}\n"
    if attribution is not None and _text(attribution):
        marker += f"Attribution: {_text(attribution)}\n"
    return marker + "[QUOTE END]\n"


def mark_testimonials(html: str) -> str:
    soup = _soup(html)

    for tag in soup.find_all(class_=_TESTIMONIAL_CLASS_RE):
        if _detached(tag) or _is_wrapper(tag, _TESTIMONIAL_CLASS_RE):
            continue
        marker = format_testimonial(tag)
        if marker:
            tag.replace_with(marker)

    for slide in soup.find_all(class_=_SLIDE_CLASS_RE):
        if _detached(slide) or not _SLIDE_HINT_RE.search(str(slide)):
            continue
        marker = format_testimonial(slide)
        if marker:
            slide.replace_with(marker)

    for quote in soup.find_all("blockquote"):
        if _detached(quote):
            continue
        marker = format_quote(quote)
        if marker:
            quote.replace_with(marker)

    return str(soup)


# --- 5. FAQs ---

def extract_question_answer(tag) -> tuple[str, str]:
    question = ""
    for candidate in (
        tag.find(class_=_QUESTION_CLASS_RE),
        tag.find(_QUESTION_HEADING_RE),
        tag.find("summary"),
        tag.find("dt"),
    ):
        if candidate is not None:
            question = _text(candidate)
            break
    if not question:
        # Headings inside the item were already rewritten to markers
        match = _HEADING_MARKER_RE.search(tag.get_text())
        if match:
            question = match.group(1).strip()

    answer = ""
    for candidate in (tag.find(class_=_ANSWER_CLASS_RE), tag.find("dd")):
        if candidate is not None:
            answer = _text(candidate)
            break

    if question and not answer:
        remainder = _HEADING_MARKER_RE.sub(" ", tag.get_text(" "))
        remainder = " ".join(remainder.replace(question, "", 1).split())
        if len(remainder) > 20:
            answer = remainder

    return question, answer


def _faq_marker(question: str, answer: str) -> str:
    return f"\n[FAQ ITEM START]\nQuestion: {question}\nAnswer: {answer}\n[FAQ ITEM END]\n"


def mark_faqs(html: str) -> str:
    soup = _soup(html)

    for item in soup.find_all(class_=_FAQ_CLASS_RE):
        if _detached(item) or _is_wrapper(item, _FAQ_CLASS_RE):
            continue
        question, answer = extract_question_answer(item)
        if question and answer:
            item.replace_with(_faq_marker(question, answer))

    for details in soup.find_all("details"):
        if _detached(details):
            continue
        summary = details.find("summary")
        if summary is None:
            continue
        question = _text(summary)
        summary.extract()
        answer = _text(details)
        if question and answer:
            details.replace_with(_faq_marker(question, answer))
        else:
            details.insert(0, summary)

    return str(soup)


# --- 6-9. regions, emphasis, blocks, links ---

def mark_regions(html: str) -> str:
    soup = _soup(html)
    for tag in soup.find_all(list(_REGION_TAGS)):
        label = tag.name.upper()
        tag.insert_before(f"\n[{label}]\n")
        tag.insert_after(f"\n[/{label}]\n")
        tag.unwrap()
    return str(soup)


def mark_emphasis(html: str) -> str:
    soup = _soup(html)
    for tag in soup.find_all(["strong", "b", "em", "i"]):
        if not tag.get_text().strip():
            tag.unwrap()
            continue
        marks = "**" if tag.name in ("strong", "b") else "*"
        tag.insert_before(marks)
        tag.insert_after(marks)
        tag.unwrap()
    return str(soup)


def break_blocks(html: str) -> str:
    soup = _soup(html)
    for tag in soup.find_all(["p", "div"]):
        tag.insert_before("\n")
        tag.insert_after("\n")
        tag.unwrap()
    return str(soup)


def inline_links(html: str) -> str:
    """Keep link text; append the URL only for mailto/tel/absolute links."""
    soup = _soup(html)
    for link in soup.find_all("a", href=True):
        text = _text(link)
        if not text:
            link.decompose()
            continue
        href = link["href"].strip()
        if _USEFUL_URL_RE.match(href):
            link.replace_with(f"{text} ({href})")
        else:
            link.replace_with(text)
    return str(soup)


# --- 10. final text ---

def normalize_whitespace(text: str) -> str:
    text = re.sub(r"[ \t\xa0]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def finalize_text(html: str) -> str:
    """Strip remaining tags, decode entities and tidy whitespace."""
    return normalize_whitespace(_soup(html).get_text())


PIPELINE = (
    strip_noise,
    mark_headings,
    mark_lists,
    mark_testimonials,
    mark_faqs,
    mark_regions,
    mark_emphasis,
    break_blocks,
    inline_links,
    finalize_text,
)


def to_structured_text(markup: str) -> str:
    """Run the full pipeline. Empty or whitespace-only input yields ""."""
    if not markup or not markup.strip():
        return ""
    text = markup
    for transform in PIPELINE:
        text = transform(text)
    return text


def to_plain_text(markup: str) -> str:
    """Visible text on one line, used for length comparisons and hashing."""
    if not markup or not markup.strip():
        return ""
    soup = _soup(markup)
    for tag in soup.find_all(["script", "style"]):
        if not tag.decomposed:
            tag.decompose()
    return " ".join(soup.get_text(" ").split())


def count_markers(text: str) -> dict[str, int]:
    """How many testimonial, quote and FAQ blocks the structured text holds."""
    return {
        "testimonials": text.count("[TESTIMONIAL START]"),
        "quotes": text.count("[QUOTE START]"),
        "faqs": text.count("[FAQ ITEM START]"),
    }
