"""Dispatch core: validation, envelopes, retry, credentials and batch dispatch."""
