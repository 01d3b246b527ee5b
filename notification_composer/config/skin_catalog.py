#!/usr/bin/env python3
"""
Skin Catalog Module

Each skin describes an illustrative phone: outer frame, screen inset and
an optional notch. Skins are immutable catalog entries, selected by id
and never mutated.

Usage:
    from notification_composer.config.skin_catalog import get_skin

    skin = get_skin('titanium-pro')
    print(skin.screen_width)  # 280
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class FrameBox:
    """Outer device frame (pixels)"""
    width: int
    height: int
    corner_radius: int
    border_thickness: int = 10


@dataclass(frozen=True)
class ScreenBox:
    """Screen area inside the frame border"""
    corner_radius: int
    inset: int = 0


@dataclass(frozen=True)
class NotchBox:
    """Centered notch hanging from the top of the screen"""
    width: int
    height: int


@dataclass(frozen=True)
class Skin:
    """
    Catalog entry describing a mock device.

    Attributes:
        id: Short identifier used for selection (e.g., 'titanium-pro')
        name: Human-readable name
        frame: Outer frame geometry
        screen: Screen inset geometry
        notch: Optional notch geometry
    """
    id: str
    name: str
    frame: FrameBox
    screen: ScreenBox
    notch: Optional[NotchBox] = None

    @property
    def screen_offset(self) -> int:
        """Distance from the frame edge to the screen edge"""
        return self.frame.border_thickness + self.screen.inset

    @property
    def screen_width(self) -> int:
        return self.frame.width - 2 * self.screen_offset

    @property
    def screen_height(self) -> int:
        return self.frame.height - 2 * self.screen_offset


# Sizes follow the CSS of the web version (1rem = 16px)
TITANIUM_PRO = Skin(
    id='titanium-pro',
    name='Titanium Pro',
    frame=FrameBox(width=300, height=610, corner_radius=56),
    screen=ScreenBox(corner_radius=48),
    notch=NotchBox(width=120, height=25),
)

GALAXY_ULTRA = Skin(
    id='galaxy-ultra',
    name='Galaxy Ultra',
    frame=FrameBox(width=290, height=620, corner_radius=24, border_thickness=8),
    screen=ScreenBox(corner_radius=19),
)

PIXEL_PRO = Skin(
    id='pixel-pro',
    name='Pixel Pro',
    frame=FrameBox(width=285, height=600, corner_radius=40),
    screen=ScreenBox(corner_radius=35),
)


# Registry of available skins
SKINS = {
    TITANIUM_PRO.id: TITANIUM_PRO,
    GALAXY_ULTRA.id: GALAXY_ULTRA,
    PIXEL_PRO.id: PIXEL_PRO,
}

DEFAULT_SKIN_ID = TITANIUM_PRO.id


def get_skin(skin_id: str) -> Skin:
    """
    Factory function to get a skin by id.

    Args:
        skin_id: Skin identifier ('titanium-pro', 'galaxy-ultra', 'pixel-pro')

    Returns:
        Skin catalog entry

    Raises:
        ValueError: If skin id is not recognized

    Example:
        skin = get_skin('pixel-pro')
        print(skin.name)  # "Pixel Pro"
    """
    if skin_id not in SKINS:
        available = ', '.join(SKINS.keys())
        raise ValueError(
            f"Unknown skin: '{skin_id}'. "
            f"Available skins: {available}"
        )

    return SKINS[skin_id]


def find_skin_by_name(name: str) -> Optional[Skin]:
    """Look up a skin by its display name (older presets store names)"""
    for skin in SKINS.values():
        if skin.name == name:
            return skin
    return None


def list_available_skins() -> List[Tuple[str, str]]:
    """
    List all skins in the catalog.

    Returns:
        List of tuples (id, name) for each skin
    """
    return [(skin.id, skin.name) for skin in SKINS.values()]
