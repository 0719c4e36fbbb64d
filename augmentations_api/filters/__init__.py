"""Request filters run before endpoint bodies."""
