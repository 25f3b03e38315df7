"""Tests for combat preview and resolution."""

import pytest

from sphere.combat import CombatOutcome, CombatResolver, CombatResult, CombatSide
from sphere.units import Unit


def unit(unit_type, faction="collective", health=100, veterancy="green", uid=None):
    return Unit(id=uid or f"{faction}-{unit_type}", unit_type=unit_type, faction=faction,
                q=0, r=0, health=health, veterancy=veterancy)


@pytest.fixture
def resolver(catalog, rng):
    return CombatResolver(catalog, rng=rng)


def side(damage, destroyed=False):
    return CombatSide(
        unit_id="u", unit_type="infantry", faction="collective", doctrine="assault",
        health=100, attack=10, defense=8, force=10, damage=damage,
        new_health=0 if destroyed else 100 - damage, destroyed=destroyed, xp_gain=0,
    )


class TestPreview:
    def test_stronger_attacker_deals_more(self, resolver):
        preview = resolver.preview_combat(
            unit("tank"), unit("infantry", "reclaimers"), "flanking", "flanking", "plains"
        )
        # 24 attack against 8 defense splits the 30-point pool 22 / 8
        assert preview.attacker.force == 24.0
        assert preview.defender.force == 8.0
        assert preview.defender.damage == 22
        assert preview.attacker.damage == 8
        assert preview.win_probability == 0.95

    def test_weaker_attacker_takes_more(self, resolver):
        preview = resolver.preview_combat(
            unit("scout"), unit("garrison", "reclaimers"), "flanking", "flanking", "plains"
        )
        assert preview.attacker.damage > preview.defender.damage
        assert 0.05 <= preview.win_probability < 0.5

    def test_casualty_scales_own_damage(self, resolver):
        preview = resolver.preview_combat(
            unit("tank"), unit("infantry", "reclaimers"), "assault", "flanking", "plains"
        )
        # assault is weak against flanking: 26 * 0.8 = 20.8 against 8.
        # The attacker's own +20% casualty raises its 8 to 10.
        assert preview.doctrine_advantage == pytest.approx(-0.2)
        assert preview.attacker.damage == 10
        assert preview.defender.damage == 22

    def test_first_strike(self, resolver):
        preview = resolver.preview_combat(
            unit("cavalry"), unit("infantry", "reclaimers"), "blitz", "flanking", "plains"
        )
        assert preview.first_strike_damage > 0
        plain = resolver.preview_combat(
            unit("cavalry"), unit("infantry", "reclaimers"), "assault", "flanking", "plains"
        )
        assert plain.first_strike_damage == 0

    def test_monotonic_in_attacker_strength(self, resolver):
        defender = unit("infantry", "reclaimers")
        previous = None
        for tier in ("green", "trained", "veteran", "elite", "legendary"):
            preview = resolver.preview_combat(
                unit("infantry", veterancy=tier), defender, "flanking", "flanking", "plains"
            )
            if previous is not None:
                assert preview.defender.damage >= previous.defender.damage
                assert preview.attacker.damage <= previous.attacker.damage
            previous = preview

    def test_terrain_and_fortress_help_defender(self, resolver):
        attacker, defender = unit("infantry"), unit("infantry", "reclaimers")
        open_ground = resolver.preview_combat(attacker, defender, "flanking", "flanking", "plains")
        ridge = resolver.preview_combat(attacker, defender, "flanking", "flanking", "mountain")
        fort = resolver.preview_combat(attacker, defender, "flanking", "flanking", "plains", ["fortress"])
        assert ridge.defender.force > open_ground.defender.force
        assert fort.defender.force > open_ground.defender.force

    def test_faction_bonuses(self, resolver):
        plain = resolver.effective_strength(unit("infantry"), "flanking", "plains", [], is_attacker=True)
        ascendant = resolver.effective_strength(
            unit("infantry", "ascendant"), "flanking", "plains", [], is_attacker=True
        )
        assert ascendant[0] == pytest.approx(plain[0] * 1.15, abs=0.1)

    def test_wounded_units_are_weaker(self, resolver):
        full = resolver.effective_strength(unit("infantry"), "flanking", "plains", [], True)
        half = resolver.effective_strength(unit("infantry", health=50), "flanking", "plains", [], True)
        assert half[0] == pytest.approx(full[0] / 2, abs=0.1)


class TestResolve:
    def test_health_never_negative(self, resolver):
        preview = resolver.preview_combat(
            unit("tank"), unit("scout", "reclaimers", health=5), "assault", "flanking", "plains"
        )
        for r in (0.0, 0.5, 1.0):
            result = resolver.resolve_combat(preview, random_factor=r)
            assert result.defender.new_health >= 0
            assert result.attacker.new_health >= 0
            assert result.defender.destroyed

    def test_variance_is_anti_correlated(self, resolver):
        preview = resolver.preview_combat(
            unit("infantry"), unit("infantry", "reclaimers"), "flanking", "flanking", "plains"
        )
        low = resolver.resolve_combat(preview, random_factor=0.0)
        high = resolver.resolve_combat(preview, random_factor=1.0)
        assert low.attacker.damage == round(preview.attacker.damage * 0.8)
        assert low.defender.damage == round(preview.defender.damage * 1.2)
        assert high.attacker.damage == round(preview.attacker.damage * 1.2)
        assert high.defender.damage == round(preview.defender.damage * 0.8)

    def test_kill_captures_and_awards_xp(self, resolver):
        preview = resolver.preview_combat(
            unit("tank"), unit("infantry", "reclaimers", health=10), "flanking", "flanking", "plains"
        )
        result = resolver.resolve_combat(preview, random_factor=0.0)
        assert result.hex_captured
        assert result.outcome == CombatOutcome.DECISIVE_VICTORY
        assert result.attacker.xp_gain == 15
        assert result.defender.xp_gain == 0
        assert not result.defender_retreats

    def test_retreat_needs_low_health_and_high_roll(self, resolver):
        preview = resolver.preview_combat(
            unit("tank"), unit("infantry", "reclaimers", health=35), "flanking", "flanking", "plains"
        )
        assert resolver.resolve_combat(preview, random_factor=1.0).defender_retreats
        assert not resolver.resolve_combat(preview, random_factor=0.4).defender_retreats

    def test_survivors_gain_xp(self, resolver):
        preview = resolver.preview_combat(
            unit("infantry"), unit("infantry", "reclaimers"), "flanking", "flanking", "plains"
        )
        result = resolver.resolve_combat(preview, random_factor=0.5)
        assert result.attacker.xp_gain == 5
        assert result.defender.xp_gain == 5

    def test_seeded_rolls_repeat(self, catalog):
        a = CombatResolver(catalog, rng_seed=3)
        b = CombatResolver(catalog, rng_seed=3)
        attacker, defender = unit("infantry"), unit("infantry", "reclaimers")
        pa = a.preview_combat(attacker, defender, "assault", "defensive", "plains")
        pb = b.preview_combat(attacker, defender, "assault", "defensive", "plains")
        assert a.resolve_combat(pa).random_factor == b.resolve_combat(pb).random_factor

    def test_result_round_trip(self, resolver):
        preview = resolver.preview_combat(
            unit("infantry"), unit("infantry", "reclaimers"), "assault", "defensive", "forest"
        )
        result = resolver.resolve_combat(preview, random_factor=0.3)
        assert CombatResult.from_dict(result.to_dict()) == result


class TestOutcomeLabels:
    @pytest.mark.parametrize("attacker_damage, defender_damage, expected", [
        (5, 20, CombatOutcome.DECISIVE_VICTORY),
        (10, 16, CombatOutcome.VICTORY),
        (10, 12, CombatOutcome.MARGINAL),
        (10, 10, CombatOutcome.STALEMATE),
        (10, 7, CombatOutcome.DEFEAT),
        (20, 5, CombatOutcome.DECISIVE_DEFEAT),
    ])
    def test_ratio_thresholds(self, resolver, attacker_damage, defender_damage, expected):
        assert resolver.determine_result(side(attacker_damage), side(defender_damage)) == expected

    def test_destruction_overrides_ratio(self, resolver):
        assert resolver.determine_result(side(30, destroyed=True), side(1)) == CombatOutcome.DECISIVE_DEFEAT


class TestDoctrines:
    def test_available_by_mobility(self, resolver):
        assert set(resolver.available_doctrines(unit("infantry"))) == {
            "assault", "defensive", "attrition", "blitz",
        }
        assert "flanking" in resolver.available_doctrines(unit("cavalry"))
        artillery = resolver.available_doctrines(unit("artillery"))
        assert "siege" in artillery
        assert "blitz" not in artillery

    def test_advantage_table(self, resolver):
        assert resolver.doctrine_advantage("assault", "defensive") == pytest.approx(0.2)
        assert resolver.doctrine_advantage("assault", "flanking") == pytest.approx(-0.2)
        assert resolver.doctrine_advantage("assault", "assault") == 0.0

    def test_recommendations(self, resolver):
        tank, infantry = unit("tank"), unit("infantry", "reclaimers")
        assert resolver.recommended_doctrine(tank, infantry, "plains", is_attacker=True) == "blitz"
        assert resolver.recommended_doctrine(infantry, tank, "urban", is_attacker=False) == "defensive"

    def test_defender_counterattacks_thin_armor(self, resolver):
        # 10 attack against 6 defense
        infantry, guns = unit("infantry", "reclaimers"), unit("artillery")
        assert resolver.recommended_doctrine(infantry, guns, "plains", is_attacker=False) == "assault"
        assert resolver.recommended_doctrine(infantry, guns, "forest", is_attacker=False) == "defensive"
