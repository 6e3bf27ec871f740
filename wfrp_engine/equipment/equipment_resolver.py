"""
Equipment resolution.

Turns raw possession records into combat-usable values: the armour-point table
by location (with the per-layer flags damage mitigation needs), carried
encumbrance, ammunition availability, and prepared weapon profiles.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging
import math
import re

from wfrp_engine.config import RuleConfig
from wfrp_engine.data_models import (
    Ammunition,
    Armour,
    ArmourType,
    AttackType,
    BodyLocation,
    CharacteristicId,
    Container,
    Money,
    Possession,
    PropertiesMixin,
    Trapping,
    Weapon,
)
from wfrp_engine.errors import NoAmmoError, NotLoadedError

logger = logging.getLogger(__name__)


# =============================================================================
# FORMULAS
# =============================================================================


def bonus_token(characteristic: CharacteristicId) -> str:
    """Formula token for a characteristic bonus, e.g. SB, TB, WPB."""
    return f"{characteristic.value.upper()}B"


_TOKEN = re.compile(r"\s*(?:(\d+)|([A-Za-z]+)|(.))")


def evaluate_formula(formula: str, bonuses: dict[str, int]) -> int:
    """
    Evaluate a damage or range formula such as "SB+4" or "SB*3".

    Supports integers, bonus tokens, + - * / and parentheses. Division
    floors. An empty formula is 0.

    Raises:
        ValueError: On unknown tokens or malformed expressions
    """
    tokens: list[str] = []
    for number, name, other in _TOKEN.findall(formula or ""):
        if number:
            tokens.append(number)
        elif name:
            key = name.upper()
            if key not in bonuses:
                raise ValueError(f"Unknown formula token {name!r} in {formula!r}")
            tokens.append(str(bonuses[key]))
        elif other.strip():
            tokens.append(other)
    if not tokens:
        return 0

    position = 0

    def peek() -> Optional[str]:
        return tokens[position] if position < len(tokens) else None

    def take() -> str:
        nonlocal position
        token = tokens[position]
        position += 1
        return token

    def factor() -> int:
        token = peek()
        if token is None:
            raise ValueError(f"Unexpected end of formula {formula!r}")
        if token in "+-":
            take()
            value = factor()
            return -value if token == "-" else value
        if token == "(":
            take()
            value = expression()
            if peek() != ")":
                raise ValueError(f"Unbalanced parentheses in {formula!r}")
            take()
            return value
        if token.lstrip("-").isdigit():
            return int(take())
        raise ValueError(f"Unexpected {token!r} in formula {formula!r}")

    def term() -> int:
        value = factor()
        while peek() in ("*", "/"):
            operator = take()
            right = factor()
            value = value * right if operator == "*" else math.floor(value / right)
        return value

    def expression() -> int:
        value = term()
        while peek() in ("+", "-"):
            operator = take()
            right = term()
            value = value + right if operator == "+" else value - right
        return value

    result = expression()
    if position != len(tokens):
        raise ValueError(f"Trailing tokens in formula {formula!r}")
    return result


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass(frozen=True)
class ArmourLayer:
    """One armour item's protection at a location."""
    armour_id: str
    name: str
    value: int
    armour_type: ArmourType
    partial: bool = False
    weakpoints: bool = False
    impenetrable: bool = False
    metal: bool = False


@dataclass(frozen=True)
class LocationArmour:
    value: int = 0
    layers: tuple[ArmourLayer, ...] = ()


@dataclass(frozen=True)
class ArmourTable:
    """Armour points by location plus the separately tracked shield."""
    locations: dict[BodyLocation, LocationArmour] = field(default_factory=dict)
    shield: int = 0

    def at(self, location: BodyLocation) -> LocationArmour:
        return self.locations.get(BodyLocation(location), LocationArmour())

    def ap(self, location: BodyLocation) -> int:
        return self.at(location).value


@dataclass(frozen=True)
class EncumbranceSummary:
    current: int = 0
    max: int = 0
    over: int = 0
    state: float = 0.0

    @property
    def tier(self) -> int:
        """0 unencumbered, then 1-3 as current exceeds 1x, 2x, 3x max."""
        for tier in (3, 2, 1):
            if self.state > tier:
                return tier
        return 0


@dataclass(frozen=True)
class AmmoStatus:
    weapon_id: str
    available: bool
    ammo_id: Optional[str] = None
    quantity: int = 0
    reason: str = ""


@dataclass(frozen=True)
class RangeBandResult:
    name: str
    low: int
    high: int
    modifier: int


@dataclass(frozen=True)
class PreparedWeapon(PropertiesMixin):
    """Weapon with derived damage, range and merged ammunition properties."""
    weapon_id: str
    name: str
    damage: int
    attack_type: AttackType
    weapon_group: str
    qualities: dict[str, Optional[int]]
    flaws: dict[str, Optional[int]]
    skill: Optional[str] = None
    two_handed: bool = False
    offhand: bool = False
    range: Optional[int] = None
    range_bands: tuple[RangeBandResult, ...] = ()
    ammo: Optional[AmmoStatus] = None
    shield: int = 0

    @property
    def is_melee(self) -> bool:
        return self.attack_type == AttackType.MELEE

    def band_for(self, distance: float) -> Optional[RangeBandResult]:
        for band in self.range_bands:
            if band.low <= distance <= band.high:
                return band
        return None


@dataclass(frozen=True)
class EquipmentSummary:
    armour: ArmourTable
    encumbrance: EncumbranceSummary
    ammo: dict[str, AmmoStatus]


# =============================================================================
# RESOLVER
# =============================================================================


PHYSICAL_TYPES = (Weapon, Armour, Ammunition, Trapping, Container, Money)


class EquipmentResolver:
    """Derives equipment values from raw possessions."""

    def __init__(self, config: RuleConfig):
        self.config = config

    def resolve(self, possessions: list[Possession], capacity: int = 0) -> EquipmentSummary:
        """
        Resolve armour, encumbrance and ammunition for a possession list.

        Args:
            possessions: The character's raw possessions
            capacity: Encumbrance capacity (the character's maximum)
        """
        ammo = {
            weapon.possession_id: self.ammo_status(weapon, possessions)
            for weapon in possessions
            if isinstance(weapon, Weapon) and weapon.consumes_ammo
        }
        return EquipmentSummary(
            armour=self.armour_table(possessions),
            encumbrance=self.encumbrance(possessions, capacity),
            ammo=ammo,
        )

    # -------------------------------------------------------------------------
    # Armour
    # -------------------------------------------------------------------------

    def armour_table(self, possessions: list[Possession]) -> ArmourTable:
        layers: dict[BodyLocation, list[ArmourLayer]] = {location: [] for location in BodyLocation}

        for armour in possessions:
            if not isinstance(armour, Armour) or not armour.worn:
                continue
            for location, points in armour.ap.items():
                location = BodyLocation(location)
                value = max(0, points - armour.damage_to_item.get(location, 0))
                layers[location].append(
                    ArmourLayer(
                        armour_id=armour.possession_id,
                        name=armour.name,
                        value=value,
                        armour_type=armour.armour_type,
                        partial=armour.has_flaw("partial"),
                        weakpoints=armour.has_flaw("weakpoints"),
                        impenetrable=armour.has_quality("impenetrable"),
                        metal=armour.is_metal,
                    )
                )

        shield = sum(
            self.shield_value(weapon)
            for weapon in possessions
            if isinstance(weapon, Weapon) and weapon.equipped
        )
        return ArmourTable(
            locations={
                location: LocationArmour(value=sum(layer.value for layer in stack), layers=tuple(stack))
                for location, stack in layers.items()
            },
            shield=shield,
        )

    @staticmethod
    def shield_value(weapon: Weapon) -> int:
        if not weapon.has_quality("shield"):
            return 0
        return max(0, weapon.quality_value("shield") - weapon.damage_to_item)

    def stealth_penalty(self, possessions: list[Possession]) -> int:
        """
        Stealth penalty for worn armour. Never positive.

        Each penalising armour type counts once however many pieces of it are
        worn. Practical pieces offset a penalty but never create a bonus.
        """
        worn_types = set()
        practicals = 0
        for armour in possessions:
            if not isinstance(armour, Armour) or not armour.worn:
                continue
            worn_types.add(armour.armour_type)
            if armour.has_quality("practical"):
                practicals += 1
        penalty = sum(self.config.armour_stealth_penalties.get(t, 0) for t in worn_types)
        if penalty and practicals:
            penalty += 10 * practicals
        return min(0, penalty)

    # -------------------------------------------------------------------------
    # Encumbrance
    # -------------------------------------------------------------------------

    def encumbrance(self, possessions: list[Possession], capacity: int = 0) -> EncumbranceSummary:
        by_id = {p.possession_id: p for p in possessions}
        total = 0.0
        for possession in possessions:
            if not isinstance(possession, PHYSICAL_TYPES):
                continue
            if self._counts(possession, by_id):
                total += possession.total_encumbrance

        current = math.floor(total)
        return EncumbranceSummary(
            current=current,
            max=capacity,
            over=max(0, current - capacity),
            state=current / capacity if capacity > 0 else 0.0,
        )

    @staticmethod
    def _counts(possession: Possession, by_id: dict[str, Possession]) -> bool:
        """Top-level items count; nested items only inside counting containers."""
        seen = set()
        container_id = possession.container_id
        while container_id:
            if container_id in seen:
                logger.warning(f"Container loop at {container_id}; '{possession.name}' not counted")
                return False
            seen.add(container_id)
            container = by_id.get(container_id)
            if container is None:
                # Missing container: treat the item as carried loose
                return True
            if not isinstance(container, Container) or not container.count_contents:
                return False
            container_id = container.container_id
        return True

    # -------------------------------------------------------------------------
    # Ammunition
    # -------------------------------------------------------------------------

    def ammo_status(self, weapon: Weapon, possessions: list[Possession]) -> AmmoStatus:
        if not weapon.consumes_ammo:
            return AmmoStatus(weapon.possession_id, available=True)

        if weapon.ammunition_group and weapon.ammunition_group != "none":
            ammo = None
            if weapon.current_ammo_id:
                ammo = next(
                    (p for p in possessions if p.possession_id == weapon.current_ammo_id and isinstance(p, Ammunition)),
                    None,
                )
            if ammo is None:
                return AmmoStatus(weapon.possession_id, available=False, reason=f"No ammunition selected for {weapon.name}")
            if ammo.quantity <= 0:
                return AmmoStatus(
                    weapon.possession_id,
                    available=False,
                    ammo_id=ammo.possession_id,
                    reason=f"No {ammo.name} left for {weapon.name}",
                )
            return AmmoStatus(weapon.possession_id, available=True, ammo_id=ammo.possession_id, quantity=ammo.quantity)

        # Thrown weapons are their own ammunition
        if weapon.quantity <= 0:
            return AmmoStatus(weapon.possession_id, available=False, reason=f"No {weapon.name} left")
        return AmmoStatus(weapon.possession_id, available=True, ammo_id=weapon.possession_id, quantity=weapon.quantity)

    def require_ammo(self, weapon: Weapon, possessions: list[Possession]) -> AmmoStatus:
        """Ammunition check for a test; raises NoAmmoError when unusable."""
        status = self.ammo_status(weapon, possessions)
        if not status.available:
            raise NoAmmoError(status.reason, subject=weapon.name)
        return status

    @staticmethod
    def require_loaded(weapon: Weapon) -> None:
        if weapon.is_loading and not weapon.loaded:
            raise NotLoadedError(f"{weapon.name} is not loaded", subject=weapon.name)

    # -------------------------------------------------------------------------
    # Weapons
    # -------------------------------------------------------------------------

    def prepare_weapon(
        self,
        weapon: Weapon,
        bonuses: dict[str, int],
        possessions: list[Possession],
        damage_increase: int = 0,
    ) -> PreparedWeapon:
        """
        Build a weapon profile against a character's bonuses.

        Args:
            weapon: Raw weapon
            bonuses: Formula tokens (SB, TB, ...) to values
            possessions: Owner's possessions, for ammunition lookup
            damage_increase: Flat damage from talents such as Strike Mighty Blow
        """
        qualities = dict(weapon.qualities)
        flaws = dict(weapon.flaws)
        ammo_status = None
        ammo_damage = 0
        range_value: Optional[int] = None

        if weapon.attack_type == AttackType.RANGED and weapon.range:
            range_value = evaluate_formula(weapon.range, bonuses)

        if weapon.consumes_ammo:
            ammo_status = self.ammo_status(weapon, possessions)
            ammo = next(
                (p for p in possessions if isinstance(p, Ammunition) and p.possession_id == ammo_status.ammo_id),
                None,
            )
            if ammo is not None:
                qualities.update(ammo.qualities)
                flaws.update(ammo.flaws)
                if ammo.damage:
                    ammo_damage = evaluate_formula(ammo.damage, bonuses)
                if range_value is not None and ammo.range_modifier:
                    range_value = self._modify_range(range_value, ammo.range_modifier)

        bands: tuple[RangeBandResult, ...] = ()
        if range_value is not None:
            bands = tuple(
                RangeBandResult(
                    name=band.name,
                    low=math.ceil(range_value * band.lower_factor),
                    high=math.floor(range_value * band.upper_factor),
                    modifier=self.config.difficulty_modifier(band.difficulty),
                )
                for band in self.config.range_bands
            )

        return PreparedWeapon(
            weapon_id=weapon.possession_id,
            name=weapon.name,
            damage=evaluate_formula(weapon.damage, bonuses) + ammo_damage + damage_increase,
            attack_type=weapon.attack_type,
            weapon_group=weapon.weapon_group,
            qualities=qualities,
            flaws=flaws,
            skill=weapon.skill,
            two_handed=weapon.two_handed,
            offhand=weapon.offhand,
            range=range_value,
            range_bands=bands,
            ammo=ammo_status,
            shield=self.shield_value(weapon),
        )

    @staticmethod
    def _modify_range(range_value: int, modifier: str) -> int:
        modifier = modifier.strip()
        try:
            if modifier.startswith("*"):
                return math.floor(range_value * float(modifier[1:]))
            if modifier[0] in "+-":
                return range_value + int(modifier)
        except (ValueError, IndexError):
            pass
        logger.warning(f"Ignoring unreadable ammunition range modifier {modifier!r}")
        return range_value
