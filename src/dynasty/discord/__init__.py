"""Discord bot integration for the dynasty league."""
