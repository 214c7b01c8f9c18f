"""Prompt templates for content generation."""

from wordseed.prompts.registry import get_prompt

__all__ = ["get_prompt"]
