"""Reactive primitives: value streams and serial execution contexts."""

from .serial import SerialExecutor  # noqa: F401
from .stream import Subscription, ValueStream  # noqa: F401
