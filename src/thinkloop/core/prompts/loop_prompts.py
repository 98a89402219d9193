"""
Loop Prompts - Think and Final-Result Instructions

This module provides the static instructions of the two model calls the
loop engine makes:
- THINK_PROMPT: Decide the next action (tool calls or completion)
- MEMORY_PROMPT: Appended to THINK_PROMPT when the agent has memory enabled
- FINAL_RESULT_PROMPT: Synthesize the answer from the execution history

Usage:
    from thinkloop.core.prompts.loop_prompts import THINK_PROMPT, MEMORY_PROMPT

    instructions = THINK_PROMPT
    if enable_memory:
        instructions += "\n\n" + MEMORY_PROMPT
"""

THINK_PROMPT = """
You are in a Think-Act reasoning loop.

YOUR TASK:
1. Analyze the current situation (goal, execution history, tool results)
2. Decide if the goal is complete or more actions are needed
3. If more actions are needed: list the tools to call in tool_calls
4. If the goal is complete: return an empty tool_calls list and, when you
   can, put the answer in final_answer

IMPORTANT:
- Return an empty tool_calls list when the task is COMPLETE
- Only use tools listed in available_tools, with arguments matching their parameters
- A failed tool result is information, not the end: adjust and continue
- Provide clear reasoning for each decision
""".strip()

MEMORY_PROMPT = """
MEMORY SYSTEM:
You have access to a persistent memory that works across iterations and runs.

Memory operations:
1. READ: add keys to memory_reads to load existing entries (see memory_catalog)
2. WRITE: populate memory_updates with key → {"value", "description", "metadata"}
   Example: memory_updates = {"favorite_color": {"value": "blue", "description": "User likes blue"}}

When to use memory:
- Save important calculations, decisions or user preferences
- Load an entry from memory_catalog before relying on its value
- Use descriptive keys like "budget_total" or "user_favorite_city"
""".strip()

FINAL_RESULT_PROMPT = """
Generate the final result based on the execution history.
Follow any instructions provided for formatting and style.
""".strip()
