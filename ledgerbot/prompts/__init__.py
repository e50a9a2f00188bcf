from ledgerbot.prompts.system import PromptBuilder, build_suggestion_prompt, build_system_prompt

__all__ = ["PromptBuilder", "build_suggestion_prompt", "build_system_prompt"]
