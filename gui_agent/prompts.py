"""System Prompt 模板"""

from typing import List

LANGUAGES = {
    "en": "English",
    "tr": "Turkish",
    "zh": "Chinese",
}

SYSTEM_PROMPT_TEMPLATE = """You are a GUI agent. You are given a task and your action history, with screenshots. You need to perform the next action to complete the task.

## Output Format
```
Thought: ...
Action: ...
```

## Action Space

{action_space}

## Note
- Use {language} in `Thought` part.
- Write a small plan and finally summarize your next action in one sentence in `Thought` part.

## User Instruction
"""


def build_system_prompt(action_spaces: List[str], language: str = "en") -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(
        action_space="\n".join(action_spaces),
        language=LANGUAGES.get(language, "English"),
    )
