"""
zerodeploy - zero-downtime release deployment with atomic symlink cutover
"""

__version__ = "0.1.0"

from .core import ReleaseDeployer
from .errors import DeployError

__all__ = ["ReleaseDeployer", "DeployError"]
