"""Static instructions for the loop engine's model calls."""

from thinkloop.core.prompts.loop_prompts import FINAL_RESULT_PROMPT, MEMORY_PROMPT, THINK_PROMPT

__all__ = ["FINAL_RESULT_PROMPT", "MEMORY_PROMPT", "THINK_PROMPT"]
