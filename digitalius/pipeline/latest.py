"""
"Most recent instruction" resolution.

Instruction recency is not stored anywhere: it is the sequence number
embedded in the title code ("I141 - ..." is newer than "I10 - ...").
Precedence: a higher number wins; on a tie the record that arrived
first from the store wins.  Titles without a parseable code never win.
"""

from __future__ import annotations

import re
from typing import Iterable, NamedTuple

from digitalius.schemas.intent import SubType
from digitalius.schemas.records import TaggedRecord

INSTRUCTION_CODE_PATTERN = re.compile(r"^\s*([IE])(\d+)")

INTERNAL_PREFIX = "I"
EXTERNAL_PREFIX = "E"


class InstructionCode(NamedTuple):
    prefix: str
    number: int


def parse_instruction_code(title: str | None) -> InstructionCode | None:
    """Parse the leading ``[IE]<digits>`` code of an instruction title."""
    if not isinstance(title, str):
        return None
    match = INSTRUCTION_CODE_PATTERN.match(title)
    if not match:
        return None
    return InstructionCode(match.group(1), int(match.group(2)))


def prefixes_for(sub_type: SubType | None) -> tuple[str, ...]:
    """Title prefixes to resolve; no sub-type means both."""
    if sub_type == SubType.INTERNAL:
        return (INTERNAL_PREFIX,)
    if sub_type == SubType.EXTERNAL:
        return (EXTERNAL_PREFIX,)
    return (INTERNAL_PREFIX, EXTERNAL_PREFIX)


def title_regex_for(prefixes: Iterable[str]) -> str:
    """
    Store-side title regex matching any of the prefixes.

    Leading whitespace is allowed, as in ``INSTRUCTION_CODE_PATTERN``.
    """
    letters = "".join(prefixes)
    if len(letters) == 1:
        return rf"^\s*{letters}"
    return rf"^\s*[{letters}]"


def select_latest(
    records: Iterable[TaggedRecord],
    prefixes: Iterable[str],
) -> list[TaggedRecord]:
    """
    Pick the highest-numbered record per prefix.

    Returns at most one record per prefix, in prefix order.
    """
    wanted = list(prefixes)
    best: dict[str, tuple[int, TaggedRecord]] = {}

    for record in records:
        code = parse_instruction_code(record.title)
        if code is None or code.prefix not in wanted:
            continue
        current = best.get(code.prefix)
        if current is None or code.number > current[0]:
            best[code.prefix] = (code.number, record)

    return [best[p][1] for p in wanted if p in best]
