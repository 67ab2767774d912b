"""Integration test package.

These tests simulate several clients sharing one ``MemoryBackend`` and
check that the resolver, live collections and write services converge.
"""
