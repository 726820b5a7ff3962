"""muse - persona-grounded conversational agent for artists."""

__version__ = "0.1.0"
__logo__ = "🎨"
