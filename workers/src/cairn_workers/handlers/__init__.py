# Import all handlers so they register themselves.
from . import import_job  # noqa: F401
from . import import_sweep  # noqa: F401
