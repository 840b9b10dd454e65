"""Providers for external services ReplyKit talks to."""
