"""
Prompt builders for the three HyperPlan primitives.

Plan prompts match a normal single-agent plan with an extra Risks &
Alternatives section, so planners never know they are part of an ensemble.
Review prompts ask for critique only. Reconcile prompts present their inputs
in random order under anonymous labels to avoid anchoring on the first plan.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Literal, Optional, Sequence

PLANNING_GUIDELINES = """- Read the relevant code before proposing changes; cite files and symbols
- Prefer the smallest change that fully solves the task
- Reuse existing patterns, helpers and conventions in the codebase
- Call out open questions instead of guessing at requirements
- Include a concrete testing strategy"""

PLAN_MODE_INSTRUCTIONS = f"""<current_operating_mode mode="plan">
Produce an implementation plan for the task. Do not implement it.

<capabilities>
- Read files and search the codebase
- Run read-only commands to inspect the project
</capabilities>

<constraints>
- Do not modify any files
- Do not run commands that change state
</constraints>

<guidelines>
{PLANNING_GUIDELINES}
</guidelines>

<output_format>
## Overview
Short summary of the approach.

## Outcomes
Bulleted list of what will be true once the task is done.

## Decisions
Meaningful choices, each with the alternatives considered.

## Plan
Ordered implementation steps, with code blocks for key interfaces and signatures.
</output_format>
</current_operating_mode>"""

PLAN_SYSTEM_PROMPT = f"""{PLAN_MODE_INSTRUCTIONS}

<additional_output_section>
After the ## Plan section, add:

## Risks & Alternatives
- The main risks of this approach and how the plan mitigates them
- Alternatives you considered and why you set them aside
- Assumptions that would change the plan if they turned out wrong
</additional_output_section>"""

REVIEW_SYSTEM_PROMPT = f"""<current_operating_mode mode="review">
Review the implementation plan you are given and produce structured feedback.
Do not write a new plan; evaluate the one provided.

<capabilities>
- Check the plan for correctness, completeness and feasibility
- Find gaps, risks and likely failure modes
- Propose specific improvements
- Read files and explore the codebase to verify the plan's claims
</capabilities>

<constraints>
- Do not produce a replacement plan
- Do not modify any files
- Do not run commands that change state
- Refer to specific sections or steps of the plan
</constraints>

<guidelines>
{PLANNING_GUIDELINES}
</guidelines>

<output_format>
## Strengths
Which parts of the plan are sound, and why.

## Weaknesses
What the plan gets wrong or leaves out, and why it matters.

## Risks
Failure modes, edge cases and assumptions that could break the plan.

## Suggestions
Concrete improvements, each tied to the plan section it changes.
</output_format>
</current_operating_mode>"""

RECONCILE_SYSTEM_PROMPT = f"""<current_operating_mode mode="reconcile">
You are given several implementation plans and/or reviews for the same task.
Produce one final plan.

<capabilities>
- Compare the plans side by side
- Identify the strongest parts of each
- Adopt, merge or synthesize approaches
- Read files and explore the codebase to verify claims
</capabilities>

<constraints>
- Produce exactly one final plan
- Do not modify any files
- Do not run commands that change state
- No input has priority because of its position or label
</constraints>

<guidelines>
{PLANNING_GUIDELINES}
</guidelines>

<evaluation_rubric>
Score each plan on:
1. Correctness: does it meet every requirement?
2. Minimality: only the changes needed?
3. Testability: is the testing strategy concrete and sufficient?
4. Risk: are edge cases and failure modes handled?
5. Reuse: does it build on existing patterns?
6. Clarity: could another engineer carry it out without questions?

Adopt one plan wholesale if it is clearly best, otherwise merge the strongest parts.
</evaluation_rubric>

<output_format>
## Overview
Short summary of the approach.

## Outcomes
Bulleted list of what will be true once the task is done.

## Decisions
Meaningful choices, each with the alternatives considered.

## Plan
Ordered implementation steps, with code blocks for key interfaces and signatures.

## Reconciliation Notes
- Which input(s) formed the basis, and why
- What was taken from each input
- What was rejected, and why
</output_format>
</current_operating_mode>"""

PLAN_LABELS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


@dataclass(frozen=True)
class StepPrompt:
    system_prompt: str
    user_message: str


@dataclass(frozen=True)
class ReconcileInput:
    step_id: str
    primitive: Literal["plan", "review"]
    text: str
    # For reviews: the plan step being reviewed
    reviews_step_id: Optional[str] = None


def _label(index: int) -> str:
    return PLAN_LABELS[index] if index < len(PLAN_LABELS) else str(index)


def build_plan_step_prompt(task_description: str) -> StepPrompt:
    return StepPrompt(system_prompt=PLAN_SYSTEM_PROMPT, user_message=task_description)


def build_review_step_prompt(task_description: str, plan_text: str, plan_step_id: str) -> StepPrompt:
    return StepPrompt(
        system_prompt=REVIEW_SYSTEM_PROMPT,
        user_message=(
            f"<task_description>\n{task_description}\n</task_description>\n\n"
            f'<plan_to_review id="{plan_step_id}">\n{plan_text}\n</plan_to_review>'
        ),
    )


def build_reconcile_step_prompt(
    task_description: str,
    inputs: Sequence[ReconcileInput],
    rng: Optional[random.Random] = None,
) -> StepPrompt:
    """Build the reconcile prompt.

    Inputs are shuffled and labelled A, B, C... in their shuffled order. A
    review whose plan is also an input carries ``reviews="Plan <label>"``.

    Args:
        task_description: The original task.
        inputs: Successful plan and review outputs.
        rng: Random source for the shuffle; the module RNG when omitted.
    """
    shuffled = list(inputs)
    (rng or random).shuffle(shuffled)
    labels = {item.step_id: _label(i) for i, item in enumerate(shuffled)}

    blocks = []
    for i, item in enumerate(shuffled):
        tag = "plan" if item.primitive == "plan" else "review"
        reviews_attr = ""
        if item.primitive == "review" and item.reviews_step_id in labels:
            reviews_attr = f' reviews="Plan {labels[item.reviews_step_id]}"'
        blocks.append(f'<{tag} id="{_label(i)}"{reviews_attr}>\n{item.text}\n</{tag}>')

    joined = "\n\n".join(blocks)
    return StepPrompt(
        system_prompt=RECONCILE_SYSTEM_PROMPT,
        user_message=(
            f"<task_description>\n{task_description}\n</task_description>\n\n"
            f'<inputs randomly_ordered="true">\n{joined}\n</inputs>'
        ),
    )
