"""Parser for Metasys object reference strings.

A reference has the form ``site:device/path.to.object``. A reference
without a path (``site:device``) denotes the engine itself.
"""

from dataclasses import dataclass, field


class InvalidReferenceError(ValueError):
    """Raised when a string is not a valid object reference."""


@dataclass(frozen=True)
class Reference:
    """Components of an object reference string."""

    reference_string: str
    site_name: str = field(init=False)
    device_name: str = field(init=False)
    path_parts: tuple[str, ...] = field(init=False)

    def __post_init__(self):
        site_name, *rest = (self.reference_string or "").split(":")
        device_name, *paths = (rest[0] if rest else "").split("/")
        path = paths[0] if paths else ""

        if not site_name or not device_name:
            msg = f"Invalid reference string: {self.reference_string!r}"
            raise InvalidReferenceError(msg)

        object.__setattr__(self, "site_name", site_name)
        object.__setattr__(self, "device_name", device_name)
        object.__setattr__(self, "path_parts", tuple(path.split(".")) if path else ())

    @classmethod
    def parse(cls, text: str) -> "Reference":
        """Parse a reference string.

        Raises:
            InvalidReferenceError: If the site or device part is missing.
        """
        return cls(text)

    @property
    def engine_reference(self) -> str:
        """The ``site:device`` part of the reference."""
        return f"{self.site_name}:{self.device_name}"

    @property
    def is_engine_reference(self) -> bool:
        """True if the reference denotes the device itself."""
        return not self.path_parts

    def __str__(self) -> str:
        return self.reference_string
