"""Setups with several interacting bodies."""

import logging
from dataclasses import dataclass
from typing import Union

from .body import Body
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShortRangeForceContact:
    """Penalty contact between two bodies.

    Args:
        body_a: Name of the first body
        body_b: Name of the second body
        radius: Contact detection distance
        penalty: Penalty stiffness
    """
    body_a: str
    body_b: str
    radius: float
    penalty: float


class MultibodySetup:
    """Two or more named bodies sharing one material model type.

    Attributes:
        bodies: Bodies in definition order
        body_names: Body names in definition order
        body_idxs: Body name -> index
        srf_contacts: Short range force contacts
    """

    def __init__(self, bodies: Union[dict, list]):
        """Build a setup from ``{name: body}`` or a list of uniquely named bodies.

        Bodies given in a dict take the key as their name; a rename is logged.

        Raises:
            ConfigurationError: fewer than two bodies, duplicate names, or
                different material model types
        """
        if isinstance(bodies, dict):
            items = list(bodies.items())
        else:
            items = [(body.name, body) for body in bodies]
        if len(items) < 2:
            raise ConfigurationError("not enough bodies given, please specify 2 or more")

        self.body_names = [str(name) for name, _ in items]
        if len(set(self.body_names)) != len(self.body_names):
            raise ConfigurationError(f"body names must be unique, got {self.body_names}")
        self.bodies = tuple(body for _, body in items)
        for name, body in zip(self.body_names, self.bodies):
            if not isinstance(body, Body):
                raise ConfigurationError(f"'{name}' is not a Body")
            if body.name != name:
                logger.warning("Body '%s' is renamed to '%s' for the multibody setup",
                               body.name, name)
                body.name = name
        mat_types = {type(body.material) for body in self.bodies}
        if len(mat_types) > 1:
            raise ConfigurationError(
                "all bodies need the same material model type, got "
                + ", ".join(sorted(t.__name__ for t in mat_types)))

        self.body_idxs = {name: i for i, name in enumerate(self.body_names)}
        self.srf_contacts: list[ShortRangeForceContact] = []

    def check_body_name(self, name: str) -> None:
        if name not in self.body_idxs:
            raise ConfigurationError(f"there is no body with name '{name}'")

    def get_body(self, key: Union[str, int]) -> Body:
        if isinstance(key, str):
            self.check_body_name(key)
            return self.bodies[self.body_idxs[key]]
        return self.bodies[key]

    def contact(self, body_a: str, body_b: str, radius: float, penalty: float = 1e12) -> None:
        """Add penalty contact between two bodies."""
        self.check_body_name(body_a)
        self.check_body_name(body_b)
        if body_a == body_b:
            raise ConfigurationError("contact needs two different bodies")
        if not radius > 0:
            raise ConfigurationError(f"contact radius must be positive, got {radius}")
        if not penalty > 0:
            raise ConfigurationError(f"contact penalty must be positive, got {penalty}")
        self.srf_contacts.append(ShortRangeForceContact(body_a, body_b, float(radius), float(penalty)))

    def log_summary(self) -> None:
        for body in self.bodies:
            body.log_summary()
        logger.info("Multibody setup: %d bodies, %d contacts",
                    len(self.bodies), len(self.srf_contacts))
