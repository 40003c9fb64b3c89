from ._mock import *  # noqa: F403
from ._storages import *  # noqa: F403
from ._transports import *  # noqa: F403
