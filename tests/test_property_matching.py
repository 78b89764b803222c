from __future__ import annotations


def test_exact_match_after_normalization(catalog):
    from rental_intake.modules.matching.service import match_property

    result = match_property("Nazare T2", catalog)
    assert result.property_id == 1
    assert result.matched_name == "Nazaré T2"
    assert result.score == 100
    assert result.method.value == "exact"


def test_alias_exact_match_beats_containment_on_name(catalog):
    from rental_intake.modules.matching.service import match_property

    result = match_property("São João Batista T3", catalog)
    assert result.property_id == 3
    assert result.score == 100
    assert result.method.value == "alias"


def test_short_code_alias(catalog):
    from rental_intake.modules.matching.service import match_property

    result = match_property("A203", catalog)
    assert result.property_id == 4
    assert result.matched_name == "Costa blue"
    assert result.score == 100
    assert result.method.value == "alias"


def test_unrelated_candidate_is_no_match(catalog):
    from rental_intake.modules.matching.service import match_property

    result = match_property("Hóspede desconhecido", catalog)
    assert result.property_id is None
    assert result.matched_name is None
    assert result.score == 0
    assert result.method.value == "none"


def test_containment_scores_by_length_ratio(catalog):
    from rental_intake.modules.matching.service import match_property

    close = match_property("Casa dos Barcos T1", catalog)
    assert close.property_id == 5
    assert close.score == 90
    assert close.method.value == "fuzzy-contains"

    loose = match_property("Apartamento Sete Rios Lisboa", catalog)
    assert loose.property_id == 2
    assert loose.score == 80


def test_token_overlap_is_capped(catalog):
    from rental_intake.modules.matching.service import match_property

    result = match_property("Rios Sete", catalog)
    assert result.property_id == 2
    assert result.score == 85
    assert result.method.value == "fuzzy-tokens"


def test_below_threshold_keeps_diagnostics_without_property(catalog):
    from rental_intake.modules.matching.service import match_property

    result = match_property("Almada Rei", catalog)
    assert result.property_id is None
    assert result.matched_name == "Almada Noronha 37"
    assert result.score == 50
    assert result.method.value == "fuzzy-tokens"

    relaxed = match_property("Almada Rei", catalog, threshold=40)
    assert relaxed.property_id == 6


def test_very_short_candidate_does_not_match_by_containment(catalog):
    from rental_intake.modules.matching.service import match_property

    assert match_property("T2", catalog).property_id is None
    assert match_property("", catalog).method.value == "none"
    assert match_property(None, catalog).score == 0


def test_abbreviated_candidate_matches_spelled_out_name():
    from rental_intake.modules.catalog.schemas import Property
    from rental_intake.modules.matching.service import match_property

    properties = [
        Property(id=1, name="Apartamento Avenida da Liberdade"),
        Property(id=2, name="Edifício Rua Augusta", aliases=("Ed. R. Augusta 12",)),
    ]

    spelled = match_property("Apt. Av. da Liberdade", properties)
    assert spelled.property_id == 1
    assert spelled.score == 100
    assert spelled.method.value == "exact"

    alias = match_property("Edificio Rua Augusta 12", properties)
    assert alias.property_id == 2
    assert alias.score == 100
    assert alias.method.value == "alias"


def test_exact_outranks_earlier_fuzzy_hit():
    from rental_intake.modules.catalog.schemas import Property
    from rental_intake.modules.matching.service import match_property

    properties = [Property(id="a", name="Sete Rios Premium"), Property(id="b", name="Sete Rios")]
    result = match_property("sete rios", properties)
    assert result.property_id == "b"
    assert result.score == 100


def test_ties_go_to_earlier_catalog_entry():
    from rental_intake.modules.catalog.schemas import Property
    from rental_intake.modules.matching.service import match_property

    properties = [Property(id="a", name="Sete Rios A1"), Property(id="b", name="Sete Rios B1")]
    first = match_property("Sete Rios", properties)
    flipped = match_property("Sete Rios", list(reversed(properties)))
    assert first.property_id == "a"
    assert flipped.property_id == "b"
    assert first.score == flipped.score == 90


def test_match_is_stable_under_normalization(catalog):
    from rental_intake.modules.matching.normalize import normalize
    from rental_intake.modules.matching.service import match_property

    for raw in ["Nazaré  T2", "Casa dos\nBarcos T1", "Rios Sete", "São João Batista T3"]:
        assert (
            match_property(raw, catalog).property_id
            == match_property(normalize(raw), catalog).property_id
        )


def test_suggestions_are_ranked_and_never_assign(catalog):
    from rental_intake.modules.matching.service import suggest_properties

    suggestions = suggest_properties("Almada Rei", catalog)
    assert [s.property_id for s in suggestions] == [6]
    assert suggestions[0].score == 50

    assert suggest_properties("Hóspede desconhecido", catalog) == []


def test_property_matcher_memoizes_per_normalized_candidate(catalog):
    from rental_intake.modules.matching.service import PropertyMatcher

    matcher = PropertyMatcher(catalog, threshold=60)
    first = matcher.match("Nazare T2")
    second = matcher.match("  nazaré\nT2 ")
    assert first == second
    assert matcher.misses == 1
    assert matcher.hits == 1


def test_catalog_load_rejects_empty_and_duplicates():
    import pytest

    from rental_intake.core.errors import CatalogUnavailable
    from rental_intake.modules.catalog.service import StaticCatalogProvider, load_catalog

    with pytest.raises(CatalogUnavailable):
        load_catalog(StaticCatalogProvider([]))

    with pytest.raises(CatalogUnavailable):
        load_catalog(
            StaticCatalogProvider([{"id": 1, "name": "Sete Rios"}, {"id": 2, "name": "Sete Rios"}])
        )

    snapshot = load_catalog(
        StaticCatalogProvider([{"id": 1, "name": "Sete Rios", "aliases": ["SR", None, " "]}])
    )
    assert snapshot.properties[0].aliases == ("SR",)
    assert snapshot.get(1).name == "Sete Rios"
