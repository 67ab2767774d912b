"""Test suite for propsync.

Unit tests live under ``tests/unit``; multi-client scenarios that wire
several components over one shared in-memory backend live under
``tests/integration``. Nothing here needs network access. Run ``pytest``
from the project root.
"""
