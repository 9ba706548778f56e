"""LLM Council backend."""
