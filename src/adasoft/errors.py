"""Exception types raised by adasoft."""


class AdaSoftError(ValueError):
    """Base class for all adasoft errors."""


class ConfigurationError(AdaSoftError):
    """Invalid construction parameters (cutoffs, sizes, reduction, config files)."""


class ShapeMismatchError(AdaSoftError):
    """Tensor dimensions disagree with the configured layout."""


class InvalidTargetError(AdaSoftError):
    """A target class id is not an integer in [0, n_classes)."""


class SerializationError(AdaSoftError):
    """A persisted payload cannot be decoded."""
