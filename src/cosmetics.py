"""
Cosmetic inventory for symbi-progress.

Holds the catalog of unlockable visual items, the player's owned items and
the equipped item per category, and builds the back-to-front render layers.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable

from src.notifications import NotificationQueue
from src.storage import COSMETICS_KEY, PersistResult, ProgressStorage

logger = logging.getLogger(__name__)

# Render z-order: lower values draw behind higher values
LAYER_ORDER = MappingProxyType({
    "background": 0,
    "color": 1,
    "accessory": 2,
    "hat": 3,
    "theme": 4,
})

COSMETIC_CATEGORIES = tuple(LAYER_ORDER)

RARITY_ORDER = MappingProxyType({
    "common": 1,
    "rare": 2,
    "epic": 3,
    "legendary": 4,
})


@dataclass(frozen=True)
class PixelData:
    """A single pixel of an 8-bit cosmetic."""

    x: int
    y: int
    color: str


@dataclass(frozen=True)
class CosmeticRenderData:
    """Rendering information for a cosmetic."""

    layer_index: int
    offset_x: int = 0
    offset_y: int = 0
    pixels: tuple[PixelData, ...] | None = None
    color_override: str | None = None

    def to_dict(self) -> dict:
        data = {
            "layer_index": self.layer_index,
            "offset_x": self.offset_x,
            "offset_y": self.offset_y,
        }
        if self.pixels is not None:
            data["pixels"] = [{"x": p.x, "y": p.y, "color": p.color} for p in self.pixels]
        if self.color_override is not None:
            data["color_override"] = self.color_override
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CosmeticRenderData":
        pixels = data.get("pixels")
        return cls(
            layer_index=data["layer_index"],
            offset_x=data.get("offset_x", 0),
            offset_y=data.get("offset_y", 0),
            pixels=tuple(PixelData(**p) for p in pixels) if pixels is not None else None,
            color_override=data.get("color_override"),
        )


@dataclass(frozen=True)
class Cosmetic:
    """A visual customization item."""

    id: str
    name: str
    category: str  # one of COSMETIC_CATEGORIES
    rarity: str
    preview_url: str
    render_data: CosmeticRenderData
    unlock_condition: str  # achievement ID or a human-readable condition
    unlocked_at: str | None = None
    source_achievement: str | None = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "rarity": self.rarity,
            "preview_url": self.preview_url,
            "render_data": self.render_data.to_dict(),
            "unlock_condition": self.unlock_condition,
        }
        if self.unlocked_at is not None:
            data["unlocked_at"] = self.unlocked_at
        if self.source_achievement is not None:
            data["source_achievement"] = self.source_achievement
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Cosmetic":
        return cls(
            id=data["id"],
            name=data["name"],
            category=data["category"],
            rarity=data["rarity"],
            preview_url=data["preview_url"],
            render_data=CosmeticRenderData.from_dict(data["render_data"]),
            unlock_condition=data["unlock_condition"],
            unlocked_at=data.get("unlocked_at"),
            source_achievement=data.get("source_achievement"),
        )


@dataclass(frozen=True)
class CosmeticLayer:
    """A single equipped item, ready for rendering."""

    cosmetic_id: str
    category: str
    layer_index: int
    render_data: CosmeticRenderData

    def to_dict(self) -> dict:
        return {
            "cosmetic_id": self.cosmetic_id,
            "category": self.category,
            "layer_index": self.layer_index,
            "render_data": self.render_data.to_dict(),
        }


@dataclass
class CosmeticInventory:
    """The player's owned cosmetics and equipped slots."""

    items: list[Cosmetic]
    equipped: dict[str, str]  # category -> cosmetic ID
    last_updated: str

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "equipped": dict(self.equipped),
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CosmeticInventory":
        return cls(
            items=[Cosmetic.from_dict(item) for item in data.get("items", [])],
            equipped=dict(data.get("equipped", {})),
            last_updated=data["last_updated"],
        )


def _pixels(color: str, *coords: tuple[int, int]) -> tuple[PixelData, ...]:
    return tuple(PixelData(x=x, y=y, color=color) for x, y in coords)


def _cosmetic(
    id: str,
    name: str,
    category: str,
    rarity: str,
    unlock_condition: str,
    offset_x: int = 0,
    offset_y: int = 0,
    pixels: tuple[PixelData, ...] | None = None,
    color_override: str | None = None,
) -> Cosmetic:
    return Cosmetic(
        id=id,
        name=name,
        category=category,
        rarity=rarity,
        preview_url=f"cosmetics/{id}.png",
        render_data=CosmeticRenderData(
            layer_index=LAYER_ORDER[category],
            offset_x=offset_x,
            offset_y=offset_y,
            pixels=pixels,
            color_override=color_override,
        ),
        unlock_condition=unlock_condition,
    )


COSMETIC_CATALOG: tuple[Cosmetic, ...] = (
    # Hats
    _cosmetic(
        "hat_crown", "Royal Crown", "hat", "common", "steps_10000",
        offset_y=-10,
        pixels=_pixels("#FFD700", (4, 0), (5, 0), (6, 0), (3, 1), (7, 1),
                       (3, 2), (4, 2), (5, 2), (6, 2), (7, 2)),
    ),
    _cosmetic(
        "hat_headband", "Fitness Headband", "hat", "common", "streak_7",
        offset_y=-5,
        pixels=_pixels("#FF6B6B", *((x, 0) for x in range(2, 9))),
    ),
    _cosmetic(
        "hat_witch", "Witch Hat", "hat", "rare", "special_halloween",
        offset_y=-12,
        pixels=_pixels("#2D1B4E", (5, 0), (4, 1), (5, 1), (6, 1),
                       *((x, 2) for x in range(3, 8)), *((x, 3) for x in range(2, 9))),
    ),
    _cosmetic(
        "hat_champion", "Champion Crown", "hat", "epic", "challenge_weekly_all",
        offset_y=-10,
        pixels=_pixels("#9333EA", (4, 0), (6, 0), (3, 1), (7, 1),
                       *((x, 2) for x in range(3, 8)))
        + _pixels("#FFD700", (5, 0), (4, 1), (5, 1), (6, 1)),
    ),
    # Accessories
    _cosmetic(
        "accessory_medal", "Gold Medal", "accessory", "rare", "steps_15000",
        offset_y=8,
        pixels=_pixels("#4169E1", (5, 0))
        + _pixels("#FFD700", (4, 1), (5, 1), (6, 1), (4, 2), (6, 2), (5, 3))
        + _pixels("#FFA500", (5, 2)),
    ),
    _cosmetic(
        "accessory_cape", "Hero Cape", "accessory", "rare", "streak_14",
        offset_x=-2, offset_y=2,
        pixels=_pixels("#DC143C", (0, 0), (0, 1), (1, 1), (0, 2), (1, 2),
                       (0, 3), (1, 3), (2, 3))
        + _pixels("#B22222", (0, 4), (1, 4), (2, 4)),
    ),
    _cosmetic(
        "accessory_trophy", "Mini Trophy", "accessory", "rare", "challenge_5",
        offset_x=8, offset_y=4,
        pixels=_pixels("#FFD700", (0, 0), (1, 0), (2, 0), (0, 1), (2, 1), (1, 2))
        + _pixels("#FFA500", (1, 1))
        + _pixels("#8B4513", (0, 3), (1, 3), (2, 3)),
    ),
    # Colors
    _cosmetic("color_gold", "Golden Glow", "color", "epic", "steps_20000",
              color_override="#FFD700"),
    _cosmetic("color_rainbow", "Rainbow Spirit", "color", "epic", "streak_60",
              color_override="rainbow"),
    # Backgrounds
    _cosmetic("background_stars", "Starry Night", "background", "epic", "streak_30"),
    _cosmetic("background_evolution", "Evolution Aura", "background", "rare",
              "explore_evolution"),
    _cosmetic("background_haunted", "Haunted Mist", "background", "rare",
              "special_halloween"),
    # Themes
    _cosmetic("theme_golden", "Golden Theme", "theme", "legendary", "steps_30000"),
    _cosmetic("theme_legendary", "Legendary Theme", "theme", "legendary", "streak_90"),
)

COSMETICS_BY_ID = MappingProxyType({c.id: c for c in COSMETIC_CATALOG})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CosmeticInventoryManager:
    """Manages owned cosmetics, equipped slots and render layers."""

    def __init__(
        self,
        storage: ProgressStorage | None = None,
        notifications: NotificationQueue | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the cosmetic manager and load the persisted inventory.

        Args:
            storage: ProgressStorage instance. Creates default if not provided.
            notifications: Queue for cosmetic-unlock announcements. Optional.
            clock: Returns the current time; used for unlock timestamps.
        """
        self.storage = storage or ProgressStorage()
        self.notifications = notifications
        self._clock = clock or _utc_now
        self.inventory = self._default_inventory()
        self._load()

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    def _default_inventory(self) -> CosmeticInventory:
        return CosmeticInventory(items=[], equipped={}, last_updated=self._now_iso())

    def _load(self) -> None:
        data = self.storage.load_record(COSMETICS_KEY)
        if not data:
            return
        try:
            self.inventory = CosmeticInventory.from_dict(data["inventory"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring unreadable cosmetic record: %s", e)
            self.inventory = self._default_inventory()

    def _persist(self) -> PersistResult:
        result = self.storage.save_record(
            COSMETICS_KEY,
            {
                "inventory": self.inventory.to_dict(),
                "last_updated": self.inventory.last_updated,
            },
        )
        if not result.ok:
            logger.warning("Cosmetic inventory kept in memory only: %s", result.error)
        return result

    def _find_owned(self, cosmetic_id: str) -> Cosmetic | None:
        for item in self.inventory.items:
            if item.id == cosmetic_id:
                return item
        return None

    # Inventory management

    def add_to_inventory(
        self, cosmetic: Cosmetic, source_achievement: str | None = None
    ) -> bool:
        """
        Add a cosmetic to the inventory.

        Duplicate grants are ignored.

        Args:
            cosmetic: The cosmetic to add
            source_achievement: ID of the achievement that granted it

        Returns:
            True if the cosmetic was newly added
        """
        if self._find_owned(cosmetic.id) is not None:
            logger.debug("Cosmetic %s already in inventory", cosmetic.id)
            return False

        now = self._now_iso()
        owned = replace(
            cosmetic,
            unlocked_at=now,
            source_achievement=source_achievement or cosmetic.source_achievement,
        )
        self.inventory.items.append(owned)
        self.inventory.last_updated = now
        self._persist()
        logger.info("Added cosmetic %s to inventory", cosmetic.id)

        if self.notifications is not None:
            self.notifications.notify_cosmetic_unlock(owned.id, owned.name, owned.rarity)
        return True

    def add_to_inventory_by_id(
        self, cosmetic_id: str, source_achievement: str | None = None
    ) -> Cosmetic | None:
        """
        Add a catalog cosmetic to the inventory by ID.

        Returns:
            The catalog cosmetic, or None if the ID is not in the catalog
        """
        cosmetic = COSMETICS_BY_ID.get(cosmetic_id)
        if cosmetic is None:
            logger.warning("Cosmetic not found in catalog: %s", cosmetic_id)
            return None

        self.add_to_inventory(cosmetic, source_achievement=source_achievement)
        return cosmetic

    def get_inventory(self) -> CosmeticInventory:
        return CosmeticInventory(
            items=list(self.inventory.items),
            equipped=dict(self.inventory.equipped),
            last_updated=self.inventory.last_updated,
        )

    def get_by_category(self, category: str) -> list[Cosmetic]:
        return [item for item in self.inventory.items if item.category == category]

    def get_by_rarity(self, rarity: str) -> list[Cosmetic]:
        return [item for item in self.inventory.items if item.rarity == rarity]

    def get_all_cosmetics(self) -> list[Cosmetic]:
        """All catalog cosmetics, with owned items in their owned state."""
        return [self._find_owned(c.id) or c for c in COSMETIC_CATALOG]

    def get_catalog_cosmetic(self, cosmetic_id: str) -> Cosmetic | None:
        return COSMETICS_BY_ID.get(cosmetic_id)

    def get_cosmetic_by_id(self, cosmetic_id: str) -> Cosmetic | None:
        return self._find_owned(cosmetic_id)

    def is_owned(self, cosmetic_id: str) -> bool:
        return self._find_owned(cosmetic_id) is not None

    # Equipment

    def equip(self, cosmetic_id: str) -> bool:
        """
        Equip an owned cosmetic in its category slot.

        Returns:
            True if the cosmetic is equipped after the call
        """
        cosmetic = self._find_owned(cosmetic_id)
        if cosmetic is None:
            logger.warning("Cannot equip %s: not owned", cosmetic_id)
            return False

        if self.inventory.equipped.get(cosmetic.category) == cosmetic_id:
            return True

        self.inventory.equipped[cosmetic.category] = cosmetic_id
        self.inventory.last_updated = self._now_iso()
        self._persist()
        logger.info("Equipped %s in %s slot", cosmetic_id, cosmetic.category)
        return True

    def unequip(self, category: str) -> bool:
        """
        Clear a category slot.

        Returns:
            True if something was unequipped
        """
        if category not in self.inventory.equipped:
            return False

        cosmetic_id = self.inventory.equipped.pop(category)
        self.inventory.last_updated = self._now_iso()
        self._persist()
        logger.info("Unequipped %s from %s slot", cosmetic_id, category)
        return True

    def unequip_cosmetic(self, cosmetic_id: str) -> bool:
        """Unequip a cosmetic by ID if it is the one in its slot."""
        cosmetic = self._find_owned(cosmetic_id)
        if cosmetic is None or not self.is_equipped(cosmetic_id):
            return False
        return self.unequip(cosmetic.category)

    def get_equipped(self) -> dict[str, str]:
        return dict(self.inventory.equipped)

    def is_equipped(self, cosmetic_id: str) -> bool:
        cosmetic = self._find_owned(cosmetic_id)
        if cosmetic is None:
            return False
        return self.inventory.equipped.get(cosmetic.category) == cosmetic_id

    # Rendering

    def _build_layers(self, slots: dict[str, Cosmetic]) -> list[CosmeticLayer]:
        layers = [
            CosmeticLayer(
                cosmetic_id=cosmetic.id,
                category=category,
                layer_index=LAYER_ORDER[category],
                render_data=cosmetic.render_data,
            )
            for category, cosmetic in slots.items()
            if category in LAYER_ORDER
        ]
        return sorted(layers, key=lambda layer: layer.layer_index)

    def _equipped_slots(self) -> dict[str, Cosmetic]:
        slots = {}
        for category, cosmetic_id in self.inventory.equipped.items():
            cosmetic = self._find_owned(cosmetic_id)
            if cosmetic is not None:
                slots[category] = cosmetic
        return slots

    def get_cosmetic_layers(self) -> list[CosmeticLayer]:
        """
        Get equipped cosmetics as render layers, back to front.

        The order depends only on category (background, color, accessory,
        hat, theme), never on the order items were equipped.
        """
        return self._build_layers(self._equipped_slots())

    def get_preview_layers(self, cosmetic_id: str) -> list[CosmeticLayer]:
        """
        Get render layers with one cosmetic swapped in for preview.

        Locked catalog items can be previewed too.
        """
        preview = self._find_owned(cosmetic_id) or COSMETICS_BY_ID.get(cosmetic_id)
        slots = self._equipped_slots()
        if preview is not None:
            slots[preview.category] = preview
        return self._build_layers(slots)

    # Statistics

    def get_statistics(self) -> dict:
        by_category = {category: 0 for category in COSMETIC_CATEGORIES}
        by_rarity = {rarity: 0 for rarity in RARITY_ORDER}
        rarest_owned = None

        for item in self.inventory.items:
            by_category[item.category] = by_category.get(item.category, 0) + 1
            by_rarity[item.rarity] = by_rarity.get(item.rarity, 0) + 1
            if rarest_owned is None or (
                RARITY_ORDER.get(item.rarity, 0) > RARITY_ORDER.get(rarest_owned.rarity, 0)
            ):
                rarest_owned = item

        return {
            "total_owned": len(self.inventory.items),
            "total_available": len(COSMETIC_CATALOG),
            "by_category": by_category,
            "by_rarity": by_rarity,
            "rarest_owned": rarest_owned.id if rarest_owned else None,
        }

    def reload(self) -> None:
        """Reload the inventory from storage."""
        self.inventory = self._default_inventory()
        self._load()

    def reset(self) -> None:
        """Reset in-memory state (for tests or data reset)."""
        self.inventory = self._default_inventory()
