"""Exception types for the dipole magnet pair model.

Two failure classes exist:

- ConfigurationError: detected once, when a pair is loaded or activated
  (missing body names, bodies absent from the world). The pair refuses to
  activate and no computation runs.
- DomainError: raised per call by the interaction formulas when the two
  dipoles coincide and the separation direction is undefined.

Both derive from ValueError.
"""


class ConfigurationError(ValueError):
    """Pair configuration cannot be resolved into a working model."""


class DomainError(ValueError):
    """Inputs lie outside the domain of the point-dipole formulas."""
