"""
Host-side collaborators for PySampler.

This package contains the matplotlib host that owns plot memories and paints
render descriptions, the synthetic sensor used by the examples, and logging
setup.
"""

from pysampler.host.mpl_host import MatplotlibHost
from pysampler.host.runtime import configure_logging
from pysampler.host.sensor import NoiseSensor

__all__ = [
    "MatplotlibHost",
    "NoiseSensor",
    "configure_logging",
]
