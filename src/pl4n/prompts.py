"""Prompt builders for the draft, peer-review and synthesis calls."""

from typing import Optional

from .diff import NO_FEEDBACK

PLAN_FORMAT = """
## Clarifications

### Assumptions

| # | Assumption | Rationale |
|---|------------|-----------|
| A1 | [What you are assuming] | [Why] |

_If revised: ~~old~~ -> new_

### Questions

**Q1: [Question]?**
- Context: [Why this matters]
- My lean: [Your best guess]
- **Answer:**

---

## Notes for Agents

<!-- Feedback for agents goes here. -->

---

## Summary

[2-3 sentence overview of the approach]

## Tasks

- [ ] **Task 1**: [Description]
  - **Files:** `path/to/file.py` (create|modify)
  - **Rationale:** [Why this task]
  - **Dependencies:** none | Task N

## Risks

- **[Risk name]** (severity: high|medium|low)
  - **Mitigation:** [How to address]

## Alternatives Considered

- **[Alternative]**: Rejected because [reason]
"""

DRAFT_PROMPT_INITIAL = """# Planning Task (Turn 1)

Create a plan for this task.

## Task
{task}

## Instructions
1. Explore the codebase: look for AGENTS.md, README.md or other documentation
2. Learn the project's conventions, architecture and patterns
3. Surface ambiguities early:
   - List the assumptions you are making so the user can correct them
   - Ask questions only where you genuinely need input
   - Give "My lean" for every question
4. Write a detailed plan

Write your plan to: `{output_file}`

{plan_format}
"""

DRAFT_PROMPT = """# Planning Task (Turn {turn})

Refine your plan based on the user's feedback.

## Task
{task}

## Your Current Plan
{prior_content}

## User Feedback
{feedback}

## Instructions
1. Review the user feedback above
2. Update your plan to incorporate it
3. Write the updated plan to: `{output_file}`

{plan_format}
"""

PEER_REVIEW_PROMPT = """# Peer Review Task

You wrote a draft. Review a peer's draft and improve your own plan.

## Task
{task}

## Your Draft
{own_draft}

## Peer's Draft ({peer_id})
{peer_draft}

## Instructions
1. Review your peer's approach
2. Adopt the ideas that improve your plan
3. Resolve conflicts between the two
4. Write your improved plan to: `{output_file}`

{plan_format}
"""

SYNTHESIS_PROMPT = """# Synthesis Task

Combine several plans into one unified plan.

## Task
{task}
{user_changes_section}
## Plans

{plans}

## Instructions
1. Identify common themes across plans
2. Where plans diverge, pick the best approach or flag it for the user
3. Merge the best ideas into one coherent plan

If plans disagree, add a ## Conflicts section explaining the options.

Write the unified plan to: `{output_file}`

{plan_format}
"""

SYNTHESIS_USER_CHANGES = """
## User's Changes From the Previous Turn (IMPORTANT)

{user_diff}

- New firm requirements MUST appear in the plan
- Questions the user asked must be answered in the plan, not repeated
- Deleted content stays deleted
- When a question is answered, fill in its **Answer:** field
"""


def draft_prompt(
	task: str,
	turn: int,
	output_file: str,
	prior_content: Optional[str] = None,
	feedback: Optional[str] = None,
) -> str:
	"""Turn 1 gets the initial prompt; later turns refine the agent's prior plan."""
	if turn == 1 or not prior_content:
		return DRAFT_PROMPT_INITIAL.format(
			task=task,
			output_file=output_file,
			plan_format=PLAN_FORMAT,
		)
	return DRAFT_PROMPT.format(
		task=task,
		turn=turn,
		prior_content=prior_content,
		feedback=feedback or NO_FEEDBACK,
		output_file=output_file,
		plan_format=PLAN_FORMAT,
	)


def review_prompt(task: str, own_draft: str, peer_id: str, peer_draft: str, output_file: str) -> str:
	return PEER_REVIEW_PROMPT.format(
		task=task,
		own_draft=own_draft,
		peer_id=peer_id,
		peer_draft=peer_draft,
		output_file=output_file,
		plan_format=PLAN_FORMAT,
	)


def synthesis_prompt(
	task: str,
	plans: dict[str, str],
	output_file: str,
	user_diff: Optional[str] = None,
) -> str:
	"""Plans are keyed by opaque plan id, never by agent id."""
	plans_text = "".join(f"### {plan_id}\n\n{text}\n\n" for plan_id, text in plans.items())
	user_changes_section = SYNTHESIS_USER_CHANGES.format(user_diff=user_diff) if user_diff else ""
	return SYNTHESIS_PROMPT.format(
		task=task,
		user_changes_section=user_changes_section,
		plans=plans_text,
		output_file=output_file,
		plan_format=PLAN_FORMAT,
	)
