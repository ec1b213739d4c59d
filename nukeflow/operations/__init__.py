"""
Built-in compositing operations.

Operation contracts grouped by area:
- basic: node creation, knobs, connections, positions, rendering
- organization: groups, LiveGroups, templates, layout, backdrops
- vfx: tracking, deep, keying, motion blur, comps and other pipelines
- project: scripts, project settings, node queries
"""

from .basic import BASIC_OPERATIONS
from .organization import ORGANIZATION_OPERATIONS
from .project import PROJECT_OPERATIONS
from .vfx import VFX_OPERATIONS

BUILTIN_OPERATIONS = [
    *BASIC_OPERATIONS,
    *ORGANIZATION_OPERATIONS,
    *VFX_OPERATIONS,
    *PROJECT_OPERATIONS,
]

__all__ = [
    "BASIC_OPERATIONS",
    "ORGANIZATION_OPERATIONS",
    "VFX_OPERATIONS",
    "PROJECT_OPERATIONS",
    "BUILTIN_OPERATIONS",
]
