"""Knowledge: persona, style profile, artifacts, retrieval."""
