# status: complete

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Sequence, Tuple

from utils.config import Config
from utils.logger import get_logger

from .errors import PlanningError
from .llm import TextCompletion
from .models import PlannedStep, StepKind

logger = get_logger(__name__)

_ORDINAL_LINE = re.compile(r"^\s*\d+\s*[.):]\s*(.*)$")
_FIRST_INTEGER = re.compile(r"\d+")

# Checked in order; the first matching kind wins.
_KIND_KEYWORDS: Sequence[Tuple[StepKind, Sequence[str]]] = (
    (StepKind.NAVIGATION, ("navigate", "go to", "go back", "visit", "open the url", "アクセス", "移動")),
    (StepKind.INTERACTION, ("click", "input", "type", "fill", "submit", "press", "select", "scroll",
                            "クリック", "入力", "送信", "選択")),
    (StepKind.WAIT, ("wait", "pause", "sleep", "待機", "待つ")),
    (StepKind.VERIFICATION, ("verify", "check", "confirm", "ensure", "確認", "検証")),
    (StepKind.EXTRACTION, ("extract", "scrape", "collect", "copy", "抽出", "取得", "収集")),
)

# Lower value survives an over-cap trim first.
_PRIORITY_CLASS = {
    StepKind.NAVIGATION: 0,
    StepKind.INTERACTION: 0,
    StepKind.WAIT: 1,
    StepKind.VERIFICATION: 1,
    StepKind.EXTRACTION: 2,
    StepKind.OTHER: 2,
}

NAVIGATION_WAIT_INSTRUCTION = "Wait 2 seconds"


def _compile(keyword: str) -> Pattern[str]:
    if keyword.isascii():
        return re.compile(r"\b" + re.escape(keyword), re.IGNORECASE)
    return re.compile(re.escape(keyword))


_KIND_PATTERNS = [(kind, [_compile(keyword) for keyword in keywords]) for kind, keywords in _KIND_KEYWORDS]


def classify_step(text: str) -> StepKind:
    for kind, patterns in _KIND_PATTERNS:
        if any(pattern.search(text) for pattern in patterns):
            return kind
    return StepKind.OTHER


def parse_wait_seconds(text: str, default: Optional[int] = None) -> int:
    match = _FIRST_INTEGER.search(text)
    if match:
        return int(match.group(0))
    return Config.get_default_wait_seconds() if default is None else default


@dataclass
class ParseResult:
    steps: List[str] = field(default_factory=list)
    malformed: bool = False


def parse_plan(text: str) -> ParseResult:
    """Keep the numbered lines of a planner response, without their ordinals."""
    if not text:
        return ParseResult(steps=[], malformed=True)

    steps: List[str] = []
    ordinal_lines = 0
    for line in text.splitlines():
        match = _ORDINAL_LINE.match(line)
        if not match:
            continue
        ordinal_lines += 1
        instruction = match.group(1).strip()
        if instruction:
            steps.append(instruction)
    return ParseResult(steps=steps, malformed=ordinal_lines == 0)


def trim_by_priority(instructions: List[str], cap: int) -> List[str]:
    """Order by priority class (stable inside each class) and cut at ``cap``."""
    ranked = sorted(
        enumerate(instructions),
        key=lambda item: (_PRIORITY_CLASS[classify_step(item[1])], item[0]),
    )
    return [instruction for _, instruction in ranked[:cap]]


def insert_navigation_waits(instructions: List[str], cap: int) -> List[str]:
    """Add a short wait after navigation steps not already followed by one, staying within ``cap``."""
    result: List[str] = []
    budget = cap - len(instructions)
    for index, instruction in enumerate(instructions):
        result.append(instruction)
        if budget <= 0 or classify_step(instruction) != StepKind.NAVIGATION:
            continue
        following = instructions[index + 1] if index + 1 < len(instructions) else None
        if following is not None and classify_step(following) == StepKind.WAIT:
            continue
        result.append(NAVIGATION_WAIT_INSTRUCTION)
        budget -= 1
    return result


class StepPlanner:
    """Turns a goal into a bounded list of atomic browser steps."""

    def __init__(
        self,
        completion: Optional[TextCompletion],
        max_steps: Optional[int] = None,
        insert_waits: Optional[bool] = None,
    ):
        self._completion = completion
        self.max_steps = max_steps or Config.get_max_planned_steps()
        self.insert_waits = Config.get_insert_navigation_waits() if insert_waits is None else insert_waits

    def build_prompt(self, goal: str) -> str:
        return (
            "You are planning a browser automation task. Break the goal below into concrete steps.\n\n"
            f"Goal: {goal}\n\n"
            "Rules:\n"
            f"- At most {self.max_steps} steps.\n"
            "- Each step is exactly one atomic browser action (navigate, click, type, wait, verify or extract).\n"
            "- Only add waits where a page actually needs time to load.\n"
            "- Output only a numbered list, one step per line, formatted like \"1. Navigate to https://example.com\".\n"
        )

    async def _request_plan(self, goal: str) -> List[str]:
        if self._completion is None:
            raise PlanningError("No planner model configured")
        response = await self._completion.complete(self.build_prompt(goal))
        parsed = parse_plan(response)
        if parsed.malformed:
            raise PlanningError("Planner response had no numbered steps")
        return parsed.steps

    async def plan(self, goal: str) -> List[PlannedStep]:
        """Never raises: any planning failure degrades to a single step equal to the goal."""
        instructions: List[str] = []
        try:
            instructions = await self._request_plan(goal)
        except Exception as e:
            logger.warning(f"[PLANNER] Planning failed, falling back to single step: {e}")

        if not instructions:
            logger.warning("[PLANNER] Empty plan, using the goal as the only step")
            instructions = [goal]

        if len(instructions) > self.max_steps:
            logger.info(
                "[PLANNER] trimmed=True planned=%d cap=%d", len(instructions), self.max_steps
            )
            instructions = trim_by_priority(instructions, self.max_steps)
        elif self.insert_waits:
            instructions = insert_navigation_waits(instructions, self.max_steps)

        steps = [
            PlannedStep(ordinal=index, instruction=instruction, kind=classify_step(instruction))
            for index, instruction in enumerate(instructions, start=1)
        ]
        logger.info("[PLANNER] Planned %d steps for goal: %s", len(steps), goal[:120])
        return steps
