"""Material models for peridynamics."""

from .material_base import MaterialBase
from .bond_based import BBMaterial, BBPointParameters

__all__ = [
    "MaterialBase",
    "BBMaterial",
    "BBPointParameters",
]
