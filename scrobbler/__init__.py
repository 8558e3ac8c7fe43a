"""Report what is playing to Last.fm, following its scrobbling rules."""

__version__ = "0.1.0"
