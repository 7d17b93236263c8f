from .logger_setup import setup_logger
# LOGGING
logger = setup_logger(__name__)

from jax import config
config.update("jax_enable_x64", True)

# Import modules
from . import errors
from . import context
from . import mesh
from . import basis
from . import fe
from . import problem
from . import solver
from . import executioners

__version__ = "0.1.0"
