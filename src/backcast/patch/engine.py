"""Text patches built on diff-match-patch.

A ``PatchSet`` is the list of hunks that turns one string into another.
The serialized form is the GNU-diff-like text produced by
``patch_toText``; it is what the revision store keeps in ``edit.patch``.

Diffs are computed line by line first. Only small replaced blocks are
refined character by character, and the total refinement work per diff is
capped, so a full rewrite of a large document costs a line-level diff
instead of a character-level one. Every bound depends on input sizes alone,
so the same inputs always give the same hunks.
"""

from __future__ import annotations

from dataclasses import dataclass

from diff_match_patch import diff_match_patch

from backcast.errors import MalformedPatchError

_DELETE = diff_match_patch.DIFF_DELETE
_INSERT = diff_match_patch.DIFF_INSERT
_EQUAL = diff_match_patch.DIFF_EQUAL

# deleted plus inserted characters of one block eligible for refinement
_REFINE_BLOCK_LIMIT = 1_000
# sum of squared block sizes refined per diff
_REFINE_BUDGET = 2_000_000


def _build_engine() -> diff_match_patch:
    engine = diff_match_patch()
    # no wall-clock cutoff; work is bounded by _REFINE_BLOCK_LIMIT and _REFINE_BUDGET
    engine.Diff_Timeout = 0
    # stored patches must land exactly where they were computed
    engine.Match_Threshold = 0.0
    engine.Patch_DeleteThreshold = 0.0
    return engine


_engine = _build_engine()


@dataclass(frozen=True, slots=True)
class PatchSet:
    hunks: tuple[object, ...] = ()

    def __len__(self) -> int:
        return len(self.hunks)


def diff(base: str, target: str) -> PatchSet:
    if base == target:
        return PatchSet()
    return PatchSet(hunks=tuple(_engine.patch_make(base, _compute_diffs(base, target))))


def _compute_diffs(base: str, target: str) -> list[tuple[int, str]]:
    prefix_length = _engine.diff_commonPrefix(base, target)
    prefix = base[:prefix_length]
    base, target = base[prefix_length:], target[prefix_length:]

    suffix_length = _engine.diff_commonSuffix(base, target)
    suffix = ""
    if suffix_length:
        suffix = base[-suffix_length:]
        base, target = base[:-suffix_length], target[:-suffix_length]

    diffs = _refine(_line_diff(base, target))
    if prefix:
        diffs.insert(0, (_EQUAL, prefix))
    if suffix:
        diffs.append((_EQUAL, suffix))
    _engine.diff_cleanupMerge(diffs)
    return diffs


def _line_diff(base: str, target: str) -> list[tuple[int, str]]:
    if not base:
        return [(_INSERT, target)] if target else []
    if not target:
        return [(_DELETE, base)]
    base_chars, target_chars, lines = _engine.diff_linesToChars(base, target)
    diffs = _engine.diff_main(base_chars, target_chars, False)
    _engine.diff_charsToLines(diffs, lines)
    return diffs


def _refine(diffs: list[tuple[int, str]]) -> list[tuple[int, str]]:
    refined: list[tuple[int, str]] = []
    budget = _REFINE_BUDGET
    deleted: list[str] = []
    inserted: list[str] = []
    # trailing sentinel flushes the last replaced block
    for op, text in [*diffs, (_EQUAL, "")]:
        if op == _DELETE:
            deleted.append(text)
            continue
        if op == _INSERT:
            inserted.append(text)
            continue

        old, new = "".join(deleted), "".join(inserted)
        deleted.clear()
        inserted.clear()
        size = len(old) + len(new)
        if old and new and size <= _REFINE_BLOCK_LIMIT and size * size <= budget:
            budget -= size * size
            refined.extend(_engine.diff_main(old, new, False))
        else:
            if old:
                refined.append((_DELETE, old))
            if new:
                refined.append((_INSERT, new))
        if text:
            refined.append((op, text))
    return refined


def is_empty(patch_set: PatchSet) -> bool:
    return not patch_set.hunks


def serialize(patch_set: PatchSet) -> str:
    return _engine.patch_toText(list(patch_set.hunks))


def deserialize(text: str) -> PatchSet:
    try:
        hunks = _engine.patch_fromText(text)
    except (ValueError, IndexError) as exc:
        msg = f"cannot parse patch: {exc}"
        raise MalformedPatchError(msg) from exc
    return PatchSet(hunks=tuple(hunks))


def apply(base: str, patch_set: PatchSet) -> tuple[str, bool]:
    """Apply every hunk to ``base``.

    On failure ``base`` is returned unchanged together with ``False``; a
    partially applied result is never exposed.
    """
    if is_empty(patch_set):
        return base, True
    result, hunk_results = _engine.patch_apply(list(patch_set.hunks), base)
    if not all(hunk_results):
        return base, False
    return result, True
