"""
PyStatSurv: survival analysis engine for Python.

Regulatory-style survival analysis validated against R's survival and
cmprsk packages: Kaplan-Meier, log-rank, Cox proportional hazards with
strata and robust variance, proportional-hazards diagnostics, gamma
frailty, and Fine-Gray competing risks.

Submodules:
    survival: Survival estimators and result composition
    core: Result envelope, exceptions, validation, timing
"""

__version__ = "0.1.0"
__author__ = "Hai-Shuo"
__email__ = "contact@sgcx.org"

from pystatsurv import core
from pystatsurv import survival

__all__ = [
    "__version__",
    "core",
    "survival",
]
