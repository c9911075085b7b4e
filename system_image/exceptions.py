class ImageError(Exception):
    """The base class for all system image exceptions."""


class ImageValidationError(ImageError):
    """Denote a system image that violates its integrity rules"""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        sep = "\n  "
        super().__init__(f"System image is invalid:{sep}{sep.join(self.errors)}")


class LayerDependencyError(ImageError):
    """Denote an unknown or cyclic layer dependency"""

    def __init__(self, message: str, layers: list[str]) -> None:
        self.layers = list(layers)
        super().__init__(message)


class LockfileIntegrityError(ImageError):
    """Denote a lockfile whose recorded checksum does not match its image"""
