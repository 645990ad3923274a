"""Pydantic schemas for request/response validation."""

from .booking import *  # noqa: F403
from .commission import *  # noqa: F403
from .common import *  # noqa: F403
from .departure import *  # noqa: F403
from .health import *  # noqa: F403
from .payment import *  # noqa: F403
from .room import *  # noqa: F403
from .savings import *  # noqa: F403
