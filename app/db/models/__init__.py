from .common import *  # noqa
from .org import *  # noqa
from .catalog import *  # noqa
from .factory import *  # noqa
from .orders import *  # noqa
from .payments import *  # noqa
from .counters import *  # noqa
from .security_audit import *  # noqa
