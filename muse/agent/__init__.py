"""Conversation agent: context assembly, control tool, streaming loop."""
