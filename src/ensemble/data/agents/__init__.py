"""Bundled agent system prompts, one markdown file per agent id."""
