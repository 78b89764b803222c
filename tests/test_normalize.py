from __future__ import annotations


def test_normalize_strips_diacritics_and_case():
    from rental_intake.modules.matching.normalize import normalize

    assert normalize("Nazaré T2") == "nazare t2"
    assert normalize("São João Batista") == "sao joao batista"
    assert normalize("Açores") == "acores"


def test_normalize_folds_line_breaks_and_punctuation():
    from rental_intake.modules.matching.normalize import normalize

    assert normalize("Casa dos\nBarcos  -  T1") == "casa dos barcos t1"
    assert normalize("  Sete\tRios\r\n") == "sete rios"
    assert normalize("Almada (Noronha) #37") == "almada noronha 37"


def test_normalize_is_idempotent():
    from rental_intake.modules.matching.normalize import normalize

    samples = [
        "Nazaré T2",
        "  São   João\nBatista T3 ",
        "Ｃａｓａ ＡＢＣ",
        "Guest: Ñoño-Pérez!",
        "",
        " Costa blue ",
        "ﬁnca",
    ]
    for s in samples:
        once = normalize(s)
        assert normalize(once) == once


def test_normalize_handles_empty_values():
    from rental_intake.modules.matching.normalize import normalize, tokens

    assert normalize(None) == ""
    assert normalize("   ") == ""
    assert normalize("!!!") == ""
    assert tokens(None) == []


def test_tokens_drop_short_words():
    from rental_intake.modules.matching.normalize import tokens

    assert tokens("Casa dos Barcos T1") == ["casa", "dos", "barcos"]


def test_expand_abbreviations_spells_out_whole_words():
    from rental_intake.modules.matching.normalize import expand_abbreviations, normalize

    assert expand_abbreviations("Apt. 3, Av. da República") == "apartamento 3 avenida da republica"
    assert expand_abbreviations("R. Augusta") == "rua augusta"
    assert expand_abbreviations("Ravenna Lodge") == "ravenna lodge"
    assert expand_abbreviations(None) == ""
    assert normalize("Av. da República") == "av da republica"
