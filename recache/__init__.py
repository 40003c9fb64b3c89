from ._async import *  # noqa: F403
from ._controller import *  # noqa: F403
from ._exceptions import *  # noqa: F403
from ._headers import *  # noqa: F403
from ._lfu_cache import *  # noqa: F403
from ._ranges import *  # noqa: F403
from ._serializers import *  # noqa: F403
from ._sync import *  # noqa: F403
from ._utils import *  # noqa: F403

__version__ = "0.1.0"
