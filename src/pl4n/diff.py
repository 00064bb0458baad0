"""
Diff Engine - line-level diffs with character-level modify pairs.

Two consumers:
- the editing surface and ``pl4n diff`` render ``build_line_diff`` output
- the orchestrator feeds ``summarize_changes`` into the next turn's
  draft and synthesis calls; its size depends on the changes, not on the
  document length

Block moves are reported as an unrelated removal plus addition.
"""

import difflib
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

NO_FEEDBACK = "No specific feedback - improve as you see fit."

DEFAULT_CONTEXT_LINES = 2


class ChangeType(str, Enum):
	ADD = "add"
	REMOVE = "remove"
	CONTEXT = "context"
	MODIFY = "modify"


@dataclass
class CharChange:
	type: ChangeType
	value: str

	def to_dict(self) -> dict:
		return {"type": self.type.value, "value": self.value}


@dataclass
class LineChange:
	"""
	One line of a line diff.

	For ``modify`` entries ``value`` is the new line, ``old_value`` the line it
	replaced and ``chars`` the character diff between them.
	"""
	type: ChangeType
	value: str
	old_value: Optional[str] = None
	chars: list[CharChange] = field(default_factory=list)

	def to_dict(self) -> dict:
		data = {"type": self.type.value, "value": self.value}
		if self.type == ChangeType.MODIFY:
			data["old_value"] = self.old_value
			data["chars"] = [c.to_dict() for c in self.chars]
		return data


def build_char_diff(old: str, new: str) -> list[CharChange]:
	"""Character-granularity diff of two strings."""
	matcher = difflib.SequenceMatcher(None, old, new, autojunk=False)
	changes: list[CharChange] = []
	for tag, i1, i2, j1, j2 in matcher.get_opcodes():
		if tag == "equal":
			changes.append(CharChange(ChangeType.CONTEXT, old[i1:i2]))
			continue
		if tag in ("delete", "replace"):
			changes.append(CharChange(ChangeType.REMOVE, old[i1:i2]))
		if tag in ("insert", "replace"):
			changes.append(CharChange(ChangeType.ADD, new[j1:j2]))
	return changes


def build_line_diff(old_text: str, new_text: str) -> list[LineChange]:
	"""
	Line-granularity diff of two documents.

	Within a replaced block, the k-th removed line is paired with the k-th
	added line as one ``modify`` entry; leftovers stay plain removes/adds.
	Lines keep their line endings, so concatenating the non-removed values
	reproduces ``new_text`` exactly.
	"""
	old_lines = old_text.splitlines(keepends=True)
	new_lines = new_text.splitlines(keepends=True)
	matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)

	changes: list[LineChange] = []
	for tag, i1, i2, j1, j2 in matcher.get_opcodes():
		if tag == "equal":
			changes.extend(LineChange(ChangeType.CONTEXT, line) for line in old_lines[i1:i2])
		elif tag == "delete":
			changes.extend(LineChange(ChangeType.REMOVE, line) for line in old_lines[i1:i2])
		elif tag == "insert":
			changes.extend(LineChange(ChangeType.ADD, line) for line in new_lines[j1:j2])
		else:
			removed = old_lines[i1:i2]
			added = new_lines[j1:j2]
			paired = min(len(removed), len(added))
			for old_line, new_line in zip(removed[:paired], added[:paired]):
				changes.append(LineChange(
					ChangeType.MODIFY,
					new_line,
					old_value=old_line,
					chars=build_char_diff(old_line, new_line),
				))
			changes.extend(LineChange(ChangeType.REMOVE, line) for line in removed[paired:])
			changes.extend(LineChange(ChangeType.ADD, line) for line in added[paired:])
	return changes


def apply_line_diff(changes: list[LineChange]) -> str:
	"""Rebuild the new document from a line diff."""
	return "".join(c.value for c in changes if c.type != ChangeType.REMOVE)


def has_changes(changes: list[LineChange]) -> bool:
	return any(c.type != ChangeType.CONTEXT for c in changes)


@dataclass
class FeedbackBundle:
	"""Bounded summary of a line diff for agent prompts."""
	additions: int
	deletions: int
	lines: list[str]

	@property
	def is_empty(self) -> bool:
		return self.additions == 0 and self.deletions == 0

	def render(self) -> str:
		if self.is_empty:
			return ""
		header = f"User edits: +{self.additions} / -{self.deletions} lines"
		return "\n".join([header, "```diff", *self.lines, "```"])


def summarize_changes(
	old_text: str,
	new_text: str,
	context_lines: int = DEFAULT_CONTEXT_LINES,
) -> FeedbackBundle:
	"""
	Reduce a diff to counts plus a fixed context window around each change.

	Unchanged runs longer than the window are collapsed to a
	``... N unchanged lines ...`` marker. A ``modify`` counts as one
	deletion and one addition.
	"""
	changes = build_line_diff(old_text, new_text)
	additions = sum(1 for c in changes if c.type in (ChangeType.ADD, ChangeType.MODIFY))
	deletions = sum(1 for c in changes if c.type in (ChangeType.REMOVE, ChangeType.MODIFY))
	if additions == 0 and deletions == 0:
		return FeedbackBundle(0, 0, [])

	changed = [i for i, c in enumerate(changes) if c.type != ChangeType.CONTEXT]
	keep: set[int] = set()
	for i in changed:
		keep.update(range(max(0, i - context_lines), min(len(changes), i + context_lines + 1)))

	lines: list[str] = []
	skipped = 0
	for i, change in enumerate(changes):
		if i not in keep:
			skipped += 1
			continue
		if skipped:
			lines.append(f"... {skipped} unchanged lines ...")
			skipped = 0
		lines.extend(_render_change(change))
	if skipped:
		lines.append(f"... {skipped} unchanged lines ...")

	return FeedbackBundle(additions, deletions, lines)


def _render_change(change: LineChange) -> list[str]:
	value = change.value.rstrip("\r\n")
	if change.type == ChangeType.CONTEXT:
		return [f"  {value}"]
	if change.type == ChangeType.ADD:
		return [f"+ {value}"]
	if change.type == ChangeType.REMOVE:
		return [f"- {value}"]
	old_value = (change.old_value or "").rstrip("\r\n")
	return [f"- {old_value}", f"+ {value}"]


def feedback_or_sentinel(old_text: Optional[str], new_text: Optional[str]) -> str:
	"""Rendered feedback bundle, or the fixed no-feedback sentinel when nothing changed."""
	if old_text is None or new_text is None:
		return NO_FEEDBACK
	rendered = summarize_changes(old_text, new_text).render()
	return rendered or NO_FEEDBACK


def unified_diff(old_text: str, new_text: str, from_file: str, to_file: str, context: int = 3) -> str:
	"""Classic unified diff text between two documents."""
	return "".join(difflib.unified_diff(
		old_text.splitlines(keepends=True),
		new_text.splitlines(keepends=True),
		fromfile=from_file,
		tofile=to_file,
		n=context,
	)).rstrip("\n")
