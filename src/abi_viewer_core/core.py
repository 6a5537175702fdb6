from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_dumper import *  # noqa: F401,F403
from ._core_model import *  # noqa: F401,F403
from ._core_classify import *  # noqa: F401,F403
from ._core_convention import *  # noqa: F401,F403
from ._core_align import *  # noqa: F401,F403
from ._core_ledger import *  # noqa: F401,F403
from ._core_compare import *  # noqa: F401,F403
from ._core_view import *  # noqa: F401,F403
