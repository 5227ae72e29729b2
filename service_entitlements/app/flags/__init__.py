"""
Flag store package.

Currently provides a Redis-backed reader for the per-user flags written
by the billing flow.
"""
