# goalbot/utils/commands.py
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

GOAL_REF_RE = re.compile(r"^#(\d+)$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

LOG_USAGE = "/log [#goal] <amount> [YYYY-MM-DD] [note]"
NEWGOAL_USAGE = "/newgoal <weekly|monthly> <target> <unit> <name>"
SETTARGET_USAGE = "/settarget [#goal] <amount>"


class CommandUsageError(ValueError):
    def __init__(self, usage: str, reason: str | None = None) -> None:
        super().__init__(f"{reason}\nUsage: {usage}" if reason else f"Usage: {usage}")
        self.usage = usage


@dataclass(frozen=True, slots=True)
class LogCommand:
    goal_id: int | None
    amount: str
    entry_date: date | None
    note: str | None


@dataclass(frozen=True, slots=True)
class NewGoalCommand:
    period_type: str
    target: str
    unit: str
    name: str


@dataclass(frozen=True, slots=True)
class SetTargetCommand:
    goal_id: int | None
    amount: str


def _tokens(args: str | None) -> list[str]:
    return (args or "").split()


def split_goal_ref(tokens: list[str]) -> tuple[int | None, list[str]]:
    """Leading `#<id>` token, if any."""
    if tokens:
        m = GOAL_REF_RE.match(tokens[0])
        if m:
            return int(m.group(1)), tokens[1:]
    return None, tokens


def parse_goal_ref(args: str | None) -> int | None:
    goal_id, _ = split_goal_ref(_tokens(args))
    return goal_id


def parse_log(args: str | None) -> LogCommand:
    goal_id, rest = split_goal_ref(_tokens(args))
    if not rest:
        raise CommandUsageError(LOG_USAGE, "Amount is missing.")

    amount, rest = rest[0], rest[1:]

    entry_date: date | None = None
    if rest and DATE_RE.match(rest[0]):
        try:
            entry_date = date.fromisoformat(rest[0])
        except ValueError as e:
            raise CommandUsageError(LOG_USAGE, f"Bad date: {rest[0]}") from e
        rest = rest[1:]

    note = " ".join(rest).strip() or None
    return LogCommand(goal_id=goal_id, amount=amount, entry_date=entry_date, note=note)


def parse_newgoal(args: str | None) -> NewGoalCommand:
    tokens = _tokens(args)
    if len(tokens) < 4:
        raise CommandUsageError(NEWGOAL_USAGE)
    period_type, target, unit = tokens[0], tokens[1], tokens[2]
    return NewGoalCommand(period_type=period_type, target=target, unit=unit, name=" ".join(tokens[3:]))


def parse_settarget(args: str | None) -> SetTargetCommand:
    goal_id, rest = split_goal_ref(_tokens(args))
    if len(rest) != 1:
        raise CommandUsageError(SETTARGET_USAGE)
    return SetTargetCommand(goal_id=goal_id, amount=rest[0])
