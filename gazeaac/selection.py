"""
Word picker state machine.

The picker walks through the steps of a flow (category, then subject and/or
core word, then predicate), assembles a sentence and hands it to the
enhancement and speech collaborators.

States are immutable variants and `transition()` is a pure function;
`SelectionMachine` owns the current state and runs the asynchronous side
effects (enhancement request, speech, auto reset).
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass, field, replace
from typing import Callable, ClassVar, Dict, List, Literal, Optional, Set, Tuple, Union

from .config import SelectionConfig
from .enhancer import EnhancementRequest, EnhancerProto
from .types import SpeakerProto
from .vocabulary import Vocabulary, WordOption, find_option


logger = logging.getLogger(__name__)

STEP_CATEGORY = "category"
STEP_SUBJECT = "subject"
STEP_CORE_WORD = "core_word"
STEP_PREDICATE = "predicate"

RELOAD_OPTION = WordOption(id="next_page", label="다시")
GENERATING_TEXT = "문장을 생성하는 중입니다..."


@dataclass(frozen=True)
class Flow:
    """Ordered picker steps and the steps whose labels form the sentence."""
    name: str
    steps: Tuple[str, ...]
    sentence_steps: Tuple[str, ...]


FLOWS: Dict[str, Flow] = {
    "core_word": Flow(
        name="core_word",
        steps=(STEP_CATEGORY, STEP_CORE_WORD, STEP_PREDICATE),
        sentence_steps=(STEP_CORE_WORD, STEP_PREDICATE),
    ),
    "subject": Flow(
        name="subject",
        steps=(STEP_CATEGORY, STEP_SUBJECT, STEP_PREDICATE),
        sentence_steps=(STEP_SUBJECT, STEP_PREDICATE),
    ),
    "subject_core_word": Flow(
        name="subject_core_word",
        steps=(STEP_CATEGORY, STEP_SUBJECT, STEP_CORE_WORD, STEP_PREDICATE),
        sentence_steps=(STEP_SUBJECT, STEP_CORE_WORD, STEP_PREDICATE),
    ),
}


def get_flow(name: str) -> Flow:
    if name not in FLOWS:
        raise ValueError(f"Unknown selection flow: {name!r} (expected one of {sorted(FLOWS)})")
    return FLOWS[name]


@dataclass(frozen=True)
class Choices:
    """Committed option ids, one slot per step."""
    category: Optional[str] = None
    subject: Optional[str] = None
    core_word: Optional[str] = None
    predicate: Optional[str] = None

    def get(self, step: str) -> Optional[str]:
        return getattr(self, step)

    def commit(self, step: str, option_id: str) -> "Choices":
        return replace(self, **{step: option_id})

    def cleared_from(self, flow: Flow, step: str) -> "Choices":
        """Drop the choice for step and every later step of the flow."""
        later = flow.steps[flow.steps.index(step):]
        return replace(self, **{s: None for s in later})


@dataclass(frozen=True)
class SelectionModel:
    """Static inputs of the transition function."""
    vocabulary: Vocabulary
    flow: Flow
    page_size: int = 4


# ===== STATES =====

@dataclass(frozen=True)
class PickingState:
    """Common shape of the option-picking steps."""
    step: ClassVar[str] = ""

    choices: Choices = field(default_factory=Choices)
    page: int = 0
    highlight: int = 0
    generation: int = 0


@dataclass(frozen=True)
class CategoryStep(PickingState):
    step: ClassVar[str] = STEP_CATEGORY


@dataclass(frozen=True)
class SubjectStep(PickingState):
    step: ClassVar[str] = STEP_SUBJECT


@dataclass(frozen=True)
class CoreWordStep(PickingState):
    step: ClassVar[str] = STEP_CORE_WORD


@dataclass(frozen=True)
class PredicateStep(PickingState):
    step: ClassVar[str] = STEP_PREDICATE


@dataclass(frozen=True)
class GeneratingState:
    """Sentence assembled, waiting for the enhancement result."""
    choices: Choices
    raw_sentence: str
    generation: int


@dataclass(frozen=True)
class CompleteState:
    """Final sentence shown and spoken."""
    choices: Choices
    raw_sentence: str
    sentence: str
    generation: int


SelectionState = Union[CategoryStep, SubjectStep, CoreWordStep, PredicateStep,
                       GeneratingState, CompleteState]

STEP_STATES = {
    STEP_CATEGORY: CategoryStep,
    STEP_SUBJECT: SubjectStep,
    STEP_CORE_WORD: CoreWordStep,
    STEP_PREDICATE: PredicateStep,
}


# ===== EVENTS =====

@dataclass(frozen=True)
class Navigate:
    direction: Literal["left", "right"]


@dataclass(frozen=True)
class Confirm:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class EnhancementFinished:
    """Result of the enhancement request started for `generation`."""
    generation: int
    sentence: str


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class AutoReset:
    """Timer expiry for the completed sentence of `generation`."""
    generation: int


SelectionEvent = Union[Navigate, Confirm, Back, EnhancementFinished, Reset, AutoReset]


# ===== PURE FUNCTIONS =====

def initial_state(model: SelectionModel, generation: int = 0) -> PickingState:
    return STEP_STATES[model.flow.steps[0]](generation=generation)


def options_for(step: str, choices: Choices, model: SelectionModel) -> List[WordOption]:
    """Full option list of a step given the choices committed before it."""
    vocab = model.vocabulary
    if step == STEP_CATEGORY:
        return vocab.categories
    if step == STEP_SUBJECT:
        return vocab.subjects
    if step == STEP_CORE_WORD:
        return vocab.core_words_for(choices.category)
    if step == STEP_PREDICATE:
        return vocab.predicates_for(choices.category, choices.core_word)
    return []


def page_count(option_count: int, page_size: int) -> int:
    return max(1, math.ceil(option_count / page_size))


def page_options(state: PickingState, model: SelectionModel) -> List[WordOption]:
    """Real options shown on the state's page (no reload option)."""
    options = options_for(state.step, state.choices, model)
    start = state.page * model.page_size
    return options[start:start + model.page_size]


def visible_options(state: PickingState, model: SelectionModel) -> List[WordOption]:
    """
    Options the highlight moves over: the current page, plus the reload
    option when the step has more options than fit on one page.
    """
    options = options_for(state.step, state.choices, model)
    visible = page_options(state, model)
    if len(options) > model.page_size:
        visible = visible + [RELOAD_OPTION]
    return visible


def build_sentence(vocabulary: Vocabulary, flow: Flow, choices: Choices) -> str:
    """
    Join the labels of the committed sentence steps of a flow.

    Steps that are not committed, or whose id does not resolve, are left out,
    so a partial selection yields a prefix and a category alone yields "".
    """
    model = SelectionModel(vocabulary=vocabulary, flow=flow)
    words = []
    for step in flow.sentence_steps:
        option = find_option(options_for(step, choices, model), choices.get(step))
        if option is not None:
            words.append(option.label)
    return " ".join(words)


def _navigate(state: PickingState, direction: str, model: SelectionModel) -> PickingState:
    count = len(visible_options(state, model))
    if count == 0:
        return state
    if direction == "right":
        highlight = (state.highlight + 1) % count
    else:
        highlight = count - 1 if state.highlight <= 0 else state.highlight - 1
    return replace(state, highlight=highlight)


def _confirm(state: PickingState, model: SelectionModel) -> SelectionState:
    visible = visible_options(state, model)
    if not visible:
        return state

    highlight = min(state.highlight, len(visible) - 1)
    option = visible[highlight]

    if option is RELOAD_OPTION:
        options = options_for(state.step, state.choices, model)
        next_page = (state.page + 1) % page_count(len(options), model.page_size)
        paged = replace(state, page=next_page)
        # Keep the highlight on the reload option of the new page
        return replace(paged, highlight=len(page_options(paged, model)))

    choices = state.choices.commit(state.step, option.id)
    steps = model.flow.steps
    position = steps.index(state.step)

    if position == len(steps) - 1:
        raw_sentence = build_sentence(model.vocabulary, model.flow, choices)
        return GeneratingState(choices=choices, raw_sentence=raw_sentence,
                               generation=state.generation + 1)

    next_state = STEP_STATES[steps[position + 1]]
    return next_state(choices=choices, generation=state.generation)


def _back(state: PickingState, model: SelectionModel) -> PickingState:
    steps = model.flow.steps
    position = steps.index(state.step)
    if position == 0:
        return initial_state(model, state.generation)

    previous = steps[position - 1]
    return STEP_STATES[previous](
        choices=state.choices.cleared_from(model.flow, previous),
        generation=state.generation
    )


def transition(state: SelectionState, event: SelectionEvent, model: SelectionModel) -> SelectionState:
    """
    Next state for an event. Never mutates its inputs.

    Args:
        state: Current state
        event: Gesture, enhancement result or timer event
        model: Vocabulary, flow and page size

    Returns:
        The next state (the same object when the event is ignored)
    """
    if isinstance(event, Reset):
        return initial_state(model, state.generation)

    if isinstance(state, GeneratingState):
        if isinstance(event, EnhancementFinished) and event.generation == state.generation:
            sentence = event.sentence or state.raw_sentence
            return CompleteState(choices=state.choices, raw_sentence=state.raw_sentence,
                                 sentence=sentence, generation=state.generation)
        if isinstance(event, Back):
            # Abandon the request; its late result no longer matches any state
            return PredicateStep(choices=replace(state.choices, predicate=None),
                                 generation=state.generation)
        return state

    if isinstance(state, CompleteState):
        if isinstance(event, (Confirm, Back)):
            return initial_state(model, state.generation)
        if isinstance(event, AutoReset) and event.generation == state.generation:
            return initial_state(model, state.generation)
        return state

    if isinstance(event, Navigate):
        return _navigate(state, event.direction, model)
    if isinstance(event, Confirm):
        return _confirm(state, model)
    if isinstance(event, Back):
        return _back(state, model)
    return state


def step_title(state: SelectionState) -> str:
    """Heading shown above the options."""
    if isinstance(state, GeneratingState):
        return "문장 생성"
    if isinstance(state, CompleteState):
        return "문장 완성"
    if state.step == STEP_CATEGORY:
        return "상황 선택"
    if state.step == STEP_SUBJECT:
        return "주어 선택"
    if state.step == STEP_CORE_WORD:
        return "핵심 단어 선택"
    return "단어 선택" if state.page > 0 else "서술어 선택"


def preview_sentence(state: SelectionState, model: SelectionModel) -> str:
    """Sentence text shown while picking."""
    if isinstance(state, GeneratingState):
        return GENERATING_TEXT
    if isinstance(state, CompleteState):
        return state.sentence
    return build_sentence(model.vocabulary, model.flow, state.choices)


# ===== DEBOUNCE =====

class DebounceGate:
    """Admits one event, then rejects events until the window expires."""

    def __init__(self, window_s: float):
        self.window_s = window_s
        self.expires_at: Optional[float] = None

    def try_acquire(self, t_now: float) -> bool:
        if self.expires_at is not None and t_now < self.expires_at:
            return False
        self.expires_at = t_now + self.window_s
        return True

    def reset(self) -> None:
        self.expires_at = None


# ===== MACHINE =====

class SelectionMachine:
    """
    Owns the picker state and implements the gesture command surface.

    Features:
    - Each command is applied to completion through transition()
    - Navigation debounced by a DebounceGate
    - At most one enhancement request in flight, bounded by a timeout
    - Stale enhancement results discarded by generation number
    - Fire-and-forget speech and optional automatic return to start
    """

    def __init__(
        self,
        vocabulary: Vocabulary,
        cfg: SelectionConfig,
        enhancer: EnhancerProto,
        speaker: Optional[SpeakerProto] = None,
        language: str = "ko-KR",
        enhancement_timeout_s: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize selection machine."""
        self.cfg = cfg
        self.model = SelectionModel(
            vocabulary=vocabulary,
            flow=get_flow(cfg.flow),
            page_size=cfg.page_size
        )
        self.enhancer = enhancer
        self.speaker = speaker
        self.language = language
        self.enhancement_timeout_s = enhancement_timeout_s
        self.clock = clock

        self.state: SelectionState = initial_state(self.model)
        self.gate = DebounceGate(cfg.navigation_debounce_ms / 1000.0)

        self._enhancement_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self.completed_sentences: List[str] = []

    # ----- command surface -----

    async def navigate_left(self) -> None:
        self._navigate("left")

    async def navigate_right(self) -> None:
        self._navigate("right")

    async def confirm(self) -> None:
        self.apply(Confirm())

    async def back(self) -> None:
        self.apply(Back())

    def _navigate(self, direction: str) -> None:
        if not self.gate.try_acquire(self.clock()):
            logger.debug("Ignoring navigate %s (debounce)", direction)
            return
        self.apply(Navigate(direction=direction))

    # ----- state handling -----

    def apply(self, event: SelectionEvent) -> SelectionState:
        """Run one event through transition() and start the side effects of the new state."""
        previous = self.state
        self.state = transition(previous, event, self.model)

        if self.state is previous:
            if isinstance(event, EnhancementFinished):
                logger.debug("Discarding stale enhancement result for generation %d", event.generation)
            return self.state

        if isinstance(previous, GeneratingState) and not isinstance(self.state, CompleteState):
            self._cancel_enhancement()

        if isinstance(self.state, GeneratingState):
            logger.info("📝 Sentence assembled: %s", self.state.raw_sentence)
            self._start_enhancement(self.state)
        elif isinstance(self.state, CompleteState):
            self._on_complete(self.state)
        return self.state

    def reset(self) -> None:
        """Return to the first step and drop pending work."""
        self._cancel_enhancement()
        self.gate.reset()
        self.apply(Reset())

    @property
    def is_generating(self) -> bool:
        return isinstance(self.state, GeneratingState)

    @property
    def visible_options(self) -> List[WordOption]:
        if isinstance(self.state, PickingState):
            return visible_options(self.state, self.model)
        return []

    @property
    def title(self) -> str:
        return step_title(self.state)

    @property
    def preview(self) -> str:
        return preview_sentence(self.state, self.model)

    # ----- side effects -----

    def _build_request(self, state: GeneratingState) -> EnhancementRequest:
        vocab = self.model.vocabulary
        choices = state.choices

        category = find_option(vocab.categories, choices.category)
        subject = find_option(vocab.subjects, choices.subject)
        predicate = find_option(options_for(STEP_PREDICATE, choices, self.model), choices.predicate)

        return EnhancementRequest(
            original_sentence=state.raw_sentence,
            subject=subject.label if subject else None,
            predicate=predicate.label if predicate else None,
            category=category.label if category else None,
            is_question=bool(subject and subject.question),
            politeness=self.cfg.politeness
        )

    def _start_enhancement(self, state: GeneratingState) -> None:
        self._cancel_enhancement()
        request = self._build_request(state)
        self._enhancement_task = self._spawn(self._enhance(state.generation, request))

    async def _enhance(self, generation: int, request: EnhancementRequest) -> None:
        try:
            sentence = await asyncio.wait_for(
                self.enhancer.enhance(request),
                timeout=self.enhancement_timeout_s
            )
        except asyncio.TimeoutError:
            logger.warning("Sentence enhancement timed out, using original sentence")
            sentence = request.original_sentence
        except Exception as e:
            logger.warning("Sentence enhancement failed (%s), using original sentence", e)
            sentence = request.original_sentence

        self.apply(EnhancementFinished(generation=generation, sentence=sentence))

    def _cancel_enhancement(self) -> None:
        task = self._enhancement_task
        self._enhancement_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _on_complete(self, state: CompleteState) -> None:
        logger.info("✅ Sentence complete: %s", state.sentence)
        self.completed_sentences.append(state.sentence)

        if self.speaker is not None:
            self._spawn(self._speak(state.sentence))

        if self.cfg.auto_reset_ms > 0:
            self._spawn(self._auto_reset(state.generation))

    async def _speak(self, text: str) -> None:
        try:
            await self.speaker.speak(text, self.language)
        except Exception as e:
            logger.warning("Speech output failed: %s", e)

    async def _auto_reset(self, generation: int) -> None:
        await asyncio.sleep(self.cfg.auto_reset_ms / 1000.0)
        self.apply(AutoReset(generation=generation))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until no background work (enhancement, speech, timers) is pending."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel all background work."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
        self._enhancement_task = None
