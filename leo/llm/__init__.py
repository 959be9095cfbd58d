"""LLM client and prompt assembly."""
