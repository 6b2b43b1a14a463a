"""
Rudimentary type [re-]definitions for cross-versioned Python & mypy.

Some StdLib types are generics in the type-sheds, while the runtime
does not support the usual syntax for them: e.g. logging.LoggerAdapter,
asyncio.Task. This modules defines them in a most suitable and reusable way.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
    Task = asyncio.Task[Any]
else:
    LoggerAdapter = logging.LoggerAdapter
    Task = asyncio.Task

# As publicly exposed: we only promise that it is based on one of the built-in loggable classes.
Logger = Union[logging.Logger, LoggerAdapter]
