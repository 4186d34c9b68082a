"""
TCG Value — Game & Variant Label Normalization

Collection rows and catalog tables were written by different importers over
time, so the same game shows up as "magic", "MTG", "Magic: The Gathering"...
Everything downstream works on the canonical enums from config.
"""

from __future__ import annotations

from tcgvalue.config import Game, VariantType

_GAME_ALIASES: dict[str, Game] = {
    "pokemon": Game.POKEMON,
    "pokémon": Game.POKEMON,
    "pkm": Game.POKEMON,
    "poke": Game.POKEMON,
    "mtg": Game.MTG,
    "magic": Game.MTG,
    "magic_the_gathering": Game.MTG,
    "magic: the gathering": Game.MTG,
    "yugioh": Game.YUGIOH,
    "ygo": Game.YUGIOH,
    "yu-gi-oh": Game.YUGIOH,
    "yu-gi-oh!": Game.YUGIOH,
    "yu gi oh": Game.YUGIOH,
}

_VARIANT_ALIASES: dict[str, VariantType] = {
    "normal": VariantType.NORMAL,
    "holo": VariantType.HOLOFOIL,
    "holofoil": VariantType.HOLOFOIL,
    "reverse": VariantType.REVERSE_HOLOFOIL,
    "reverse_holo": VariantType.REVERSE_HOLOFOIL,
    "reverseholo": VariantType.REVERSE_HOLOFOIL,
    "reverse_holofoil": VariantType.REVERSE_HOLOFOIL,
    "first": VariantType.FIRST_EDITION,
    "firstedition": VariantType.FIRST_EDITION,
    "first_edition": VariantType.FIRST_EDITION,
    "promo": VariantType.PROMO,
    "wpromo": VariantType.PROMO,
    "w_promo": VariantType.PROMO,
}


def normalize_game(raw: str | Game | None) -> Game | None:
    """Map a stored game label to a canonical Game, or None if unrecognized."""
    if raw is None:
        return None
    if isinstance(raw, Game):
        return raw
    return _GAME_ALIASES.get(str(raw).strip().lower())


def normalize_variant_type(raw: str | VariantType | None) -> VariantType:
    """Map a stored variant label to a VariantType. Unknown or blank → NORMAL."""
    if isinstance(raw, VariantType):
        return raw
    key = str(raw or "").strip().lower().replace("-", "_").replace(" ", "_")
    if not key:
        return VariantType.NORMAL
    return _VARIANT_ALIASES.get(key, VariantType.NORMAL)
