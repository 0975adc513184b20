"""
Program-log classification.

Maps the raw log lines of one pump.fun transaction to the set of event kinds
it signals.  Matching is plain substring presence against ``LOG_RULES``; a
transaction may match several kinds (a sell that also withdraws liquidity,
for instance) and every match is reported.

Classification is best-effort: an instruction whose log text is not in the
table is silently dropped, so a program upgrade that renames an instruction
shows up as missing alerts, not as errors.  Extend ``LOG_RULES`` when the
program gains new instructions.
"""

from __future__ import annotations

from typing import Iterable

from .models import EventKind

LOG_RULES: tuple[tuple[str, EventKind], ...] = (
    ("Program log: Instruction: Create", EventKind.TOKEN_CREATE),
    ("Program log: Instruction: Initialize", EventKind.TOKEN_CREATE),
    ("Program log: Instruction: Sell", EventKind.SELL),
    ("Program log: Instruction: Buy", EventKind.BUY),
    ("withdraw", EventKind.LIQUIDITY_CHANGE),
    ("remove_liquidity", EventKind.LIQUIDITY_CHANGE),
    ("migrate", EventKind.LIQUIDITY_CHANGE),
)


def classify(
    log_lines: Iterable[str],
    rules: tuple[tuple[str, EventKind], ...] = LOG_RULES,
) -> frozenset[EventKind]:
    """Return every event kind whose marker appears in *log_lines*.

    An empty set means the record carries nothing we track.
    """
    lines = [line for line in log_lines if isinstance(line, str)]
    kinds: set[EventKind] = set()
    for marker, kind in rules:
        if kind in kinds:
            continue
        if any(marker in line for line in lines):
            kinds.add(kind)
    return frozenset(kinds)
