"""LLM backend client."""
