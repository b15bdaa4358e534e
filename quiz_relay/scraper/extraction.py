"""
Question extraction from course player frame HTML.

The player renders the same logical question in three DOM shapes depending on
the quiz version, and none of them is documented. Extraction therefore works
as a chain of small, independent tiers, each a pure function from a container
element to an optional result:

    blocks      .xblock vertical -> div.vert-mod -> div.vert.vert-*
    containers  response wrappers -> generic .xblock -> the block itself
    text        problem header -> text preceding the first input -> text scan
    options     legacy labels -> alternate spans

A tier that finds nothing hands over to the next one. A container that still
yields nothing is dropped: a missing question is preferable to a failed scrape.
"""

import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, NavigableString, PageElement, Tag  # type: ignore
from bs4.element import PreformattedString  # type: ignore

from ..constants import HIDDEN_STYLE, MIN_CANDIDATE_LENGTH, QUESTION_ID_PREFIXES, SELECTORS
from ..models import Question, QuestionKind
from ..utils.text_processor import TextProcessor

logger = logging.getLogger(__name__)

TextTier = Callable[[Tag], Optional[str]]

NON_CONTENT_TAGS = frozenset(['script', 'style', 'template', 'noscript'])


# ---------------------------------------------------------------------------
# DOM helpers
# ---------------------------------------------------------------------------

def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", 'html.parser')


def _classes(tag: Tag) -> List[str]:
    value = tag.get('class') or []
    return value.split() if isinstance(value, str) else list(value)


def _class_attr(tag: Tag) -> str:
    return ' '.join(_classes(tag))


def _closest(tag: Tag, predicate: Callable[[Tag], bool]) -> Optional[Tag]:
    """Nearest element, starting with ``tag`` itself, that satisfies ``predicate``."""
    node = tag
    while isinstance(node, Tag):
        if predicate(node):
            return node
        node = node.parent
    return None


def is_hidden(element: PageElement) -> bool:
    """True when the element or an ancestor is hidden with an inline style."""
    node = element if isinstance(element, Tag) else element.parent
    hidden = _closest(node, lambda t: bool(HIDDEN_STYLE.search(t.get('style') or ''))) if node else None
    return hidden is not None


def _is_text_node(node: PageElement) -> bool:
    if not isinstance(node, NavigableString) or isinstance(node, PreformattedString):
        return False
    return node.parent is None or node.parent.name not in NON_CONTENT_TAGS


def _node_text(node: PageElement) -> str:
    if isinstance(node, Tag):
        return node.get_text().strip()
    if _is_text_node(node):
        return str(node).strip()
    return ""


def _select_first_tier(root: Tag, selectors: Sequence[str]) -> List[Tag]:
    """Results of the first selector that matches anything."""
    for selector in selectors:
        found = root.select(selector)
        if found:
            return found
    return []


def _first_match(root: Tag, selectors: Sequence[str]) -> Optional[Tag]:
    for selector in selectors:
        found = root.select_one(selector)
        if found is not None:
            return found
    return None


def _container_id(control: Tag, prefix: str) -> Optional[str]:
    """Id of the nearest ``div[id]`` around an input, without ``prefix``."""
    holder = _closest(control, lambda t: t.name == 'div' and bool(t.get('id')))
    if holder is None:
        return None
    raw = holder.get('id')
    return raw[len(prefix):] if raw.startswith(prefix) else raw


# ---------------------------------------------------------------------------
# Blocks and containers
# ---------------------------------------------------------------------------

def _is_vert(tag: Tag) -> bool:
    classes = _classes(tag)
    return tag.name == 'div' and 'vert' in classes and any(c.startswith('vert-') for c in classes)


def find_question_blocks(soup: Tag) -> List[Tag]:
    """Top-level question blocks of a frame, in document order."""
    blocks = []
    for xblock in soup.select(SELECTORS['vertical_block']):
        vert_mod = xblock.select_one(SELECTORS['vert_mod'])
        if vert_mod is None:
            logger.debug("Vertical xblock without div.vert-mod, skipping")
            continue
        verts = [el for el in vert_mod.find_all('div') if _is_vert(el)]
        if not verts:
            logger.debug("div.vert-mod without vert elements, skipping")
            continue
        blocks.extend(verts)
    return blocks


def resolve_containers(block: Tag) -> List[Tag]:
    """
    Question containers of a block.

    Tier 1: response wrappers inside problems (one block, many questions).
    Tier 2: nested generic xblocks.
    Tier 3: the block itself as a single question.
    """
    wrappers = block.select(SELECTORS['response_wrapper'])
    if wrappers:
        return wrappers
    xblocks = block.select(SELECTORS['generic_block'])
    if xblocks:
        return xblocks
    return [block]


# ---------------------------------------------------------------------------
# Question text tiers
# ---------------------------------------------------------------------------

def first_success(tiers: Iterable[TextTier], container: Tag) -> Optional[str]:
    """Return the first non-empty result of ``tiers`` applied in order."""
    for tier in tiers:
        result = tier(container)
        if result:
            logger.debug(f"Question text resolved by {tier.__name__}")
            return result
    return None


def _is_excluded(text: str, progress_text: str) -> bool:
    return (
        TextProcessor.is_scoring_annotation(text)
        or (bool(progress_text) and text == progress_text)
        or TextProcessor.is_previous_answer(text)
        or TextProcessor.is_boilerplate(text)
    )


def _answer_context(container: Tag) -> Optional[Tuple[Tag, Tag, str]]:
    """First answer input, the problem element around it and its progress text."""
    first_input = _first_match(container, SELECTORS['first_input'])
    if first_input is None:
        return None

    problem = _closest(first_input, lambda t: t.name == 'div' and 'problem' in _classes(t))
    if problem is None:
        problem = _closest(
            first_input,
            lambda t: t.name == 'div' and ('problem' in _class_attr(t) or 'question' in _class_attr(t))
        ) or container

    progress = problem.select_one(SELECTORS['problem_progress'])
    progress_text = progress.get_text().strip() if progress is not None else ''
    return first_input, problem, progress_text


def header_text(container: Tag) -> Optional[str]:
    """Text of the problem header, unless it is boilerplate."""
    header = container.select_one(SELECTORS['problem_header'])
    if header is None:
        return None
    text = header.get_text().strip()
    return None if TextProcessor.is_boilerplate(text) else text


def preceding_text(container: Tag) -> Optional[str]:
    """
    Walk backwards from the first answer input and return the first
    substantive text before it.

    Preceding siblings are tried first, then the parent's preceding sibling,
    then the parent itself; the walk never leaves the problem element.
    """
    context = _answer_context(container)
    if context is None:
        return None
    first_input, problem, progress_text = context

    current: Optional[PageElement] = first_input
    while current is not None and current is not problem:
        previous = current.previous_sibling
        if previous is None and current.parent is not None and current.parent is not problem:
            previous = current.parent.previous_sibling
        if previous is None:
            current = current.parent
            continue

        text = _node_text(previous)
        if len(text) > MIN_CANDIDATE_LENGTH and not _is_excluded(text, progress_text):
            return text
        current = previous
    return None


def container_text_scan(container: Tag) -> Optional[str]:
    """Visible, non-boilerplate text nodes of the problem element, in document order."""
    context = _answer_context(container)
    if context is None:
        return None
    _, problem, progress_text = context

    parts = []
    for node in problem.find_all(string=True):
        if not _is_text_node(node):
            continue
        text = node.strip()
        if len(text) < MIN_CANDIDATE_LENGTH or _is_excluded(text, progress_text):
            continue
        if is_hidden(node):
            continue
        parts.append(text)
    joined = ' '.join(parts).strip()
    return joined or None


QUESTION_TEXT_TIERS: Tuple[TextTier, ...] = (header_text, preceding_text, container_text_scan)


def sub_question_text(container: Tag) -> Optional[str]:
    paragraph = container.select_one(SELECTORS['sub_question'])
    if paragraph is None:
        return None
    return paragraph.get_text().strip() or None


def resolve_question_text(container: Tag) -> Optional[str]:
    """Question text from the tier chain plus any differing clarifying sub-question."""
    text = first_success(QUESTION_TEXT_TIERS, container)
    if not text:
        return None
    sub_question = sub_question_text(container)
    if sub_question and sub_question != text:
        text = f"{text} {sub_question}"
    return text


# ---------------------------------------------------------------------------
# Answer shape
# ---------------------------------------------------------------------------

def extract_options(container: Tag) -> List[str]:
    labels = _select_first_tier(container, SELECTORS['option_labels'])
    options = (TextProcessor.strip_enumeration(label.get_text()) for label in labels)
    return [option for option in options if option]


def classify_choice(inputs: Sequence[Tag]) -> QuestionKind:
    """Multi-choice when every input is a checkbox; no inputs counts as single choice."""
    if inputs and all((i.get('type') or '').lower() == 'checkbox' for i in inputs):
        return QuestionKind.MULTI_CHOICE
    return QuestionKind.SINGLE_CHOICE


def extract_question(container: Tag) -> Optional[Question]:
    """
    Build a Question from one container.

    Returns:
        The question, or None when the container is hidden, has no question
        text, or is a choice question without options
    """
    if is_hidden(container):
        logger.debug("Container is hidden, skipping")
        return None

    problems_wrapper = _closest(
        container, lambda t: t.name == 'div' and 'problems-wrapper' in _classes(t)
    )
    problem_id = problems_wrapper.get('data-problem-id') if problems_wrapper is not None else None

    text = resolve_question_text(container)
    if not text:
        logger.debug("No question text found for container")
        return None

    text_input = container.select_one(SELECTORS['text_input'])
    if text_input is not None:
        return Question(
            text=text,
            kind=QuestionKind.TEXT,
            options=[],
            problem_id=problem_id,
            question_id=_container_id(text_input, QUESTION_ID_PREFIXES['text'])
        )

    options = extract_options(container)
    if not options:
        logger.debug(f"No options found for choice question: {text[:60]}")
        return None

    inputs = _select_first_tier(container, SELECTORS['choice_inputs'])
    question_id = _container_id(inputs[0], QUESTION_ID_PREFIXES['choice']) if inputs else None
    return Question(
        text=text,
        kind=classify_choice(inputs),
        options=options,
        problem_id=problem_id,
        question_id=question_id
    )


def extract_questions_from_html(html: str) -> List[Question]:
    """All questions found in one frame document, duplicates included."""
    soup = parse_html(html)
    questions = []
    blocks = find_question_blocks(soup)
    logger.debug(f"Found {len(blocks)} question blocks in frame")
    for block in blocks:
        for container in resolve_containers(block):
            question = extract_question(container)
            if question is not None:
                questions.append(question)
    return questions


def dedupe_questions(questions: Iterable[Question]) -> List[Question]:
    """Keep the first question for each composite key, preserving order."""
    seen = set()
    unique = []
    for question in questions:
        if question.key in seen:
            logger.debug(f"Dropping duplicate question: {question.text[:60]}")
            continue
        seen.add(question.key)
        unique.append(question)
    return unique
