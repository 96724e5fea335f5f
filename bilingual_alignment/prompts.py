from __future__ import annotations

import json
from typing import Any

from .types import LlmCandidate, TaskLabel


MATCH_RESPONSE_SCHEMA = "{\"matches\":[{\"order\":number,\"candidateId\":string,\"confidence\":number}]}"


def get_match_system_prompt(task_label: TaskLabel) -> str:
    if task_label == "full_text":
        return (
            "You map English transcript lines to Chinese transcript lines.\n"
            "Return strict JSON only with this schema:\n"
            f"{MATCH_RESPONSE_SCHEMA}\n"
            "Rules:\n"
            "1. Match by semantics first, then timestamp proximity.\n"
            "2. Do not invent Chinese text.\n"
            "3. candidateId must come from the provided candidate list.\n"
            "4. A candidate can be used at most once.\n"
            "5. If no confident match exists, omit that order from matches."
        )
    return (
        "You map missing Chinese summary bullets to English summary bullets.\n"
        "Return strict JSON only with this schema:\n"
        f"{MATCH_RESPONSE_SCHEMA}\n"
        "Rules:\n"
        "1. Match by section/topic consistency and semantic equivalence.\n"
        "2. Do not invent text.\n"
        "3. candidateId must come from candidates and cannot repeat.\n"
        "4. Omit uncertain matches instead of guessing."
    )


def get_match_user_prompt(
    *,
    missing: list[dict[str, Any]],
    candidates: list[LlmCandidate],
    task_label: TaskLabel,
) -> str:
    header = (
        "Map missing Chinese full-text lines to candidates."
        if task_label == "full_text"
        else "Map missing Chinese summary bullets to candidates."
    )
    return (
        f"{header}\n\n"
        "## Missing entries\n"
        f"{json.dumps(missing, ensure_ascii=False, indent=2)}\n\n"
        "## Candidates\n"
        f"{json.dumps([candidate.to_prompt_dict() for candidate in candidates], ensure_ascii=False, indent=2)}\n\n"
        "## Output JSON only"
    )
