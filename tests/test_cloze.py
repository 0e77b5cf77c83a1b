"""Tests for emphasis to cloze conversion in org_anki/cloze.py."""

import pytest

from org_anki.cloze import (
    convert_emphasis_to_cloze,
    emphasis_pattern,
    fixed_dots,
    format_cloze,
    length_dots,
    log_dots,
    parse_occlusion,
)


class TestConvertEmphasisToCloze:
    """Tests for convert_emphasis_to_cloze."""

    def test_reference_example(self):
        """The capital-of-France line converts with a four-dot mask."""
        result = convert_emphasis_to_cloze("The capital of France is _Paris_. ")
        assert result == "The capital of France is {{c1::Paris::....}}."

    def test_numbering_is_sequential(self):
        text = "_one_ and _two_ and _three_"
        result = convert_emphasis_to_cloze(text, occlusion=None)
        assert result == "{{c1::one}} and {{c2::two}} and {{c3::three}}"

    def test_numbering_spans_lines(self):
        text = "First _a_\nSecond _b_\nThird _c_"
        result = convert_emphasis_to_cloze(text, occlusion=None)
        assert result == "First {{c1::a}}\nSecond {{c2::b}}\nThird {{c3::c}}"

    def test_numbering_restarts_per_field(self):
        first = convert_emphasis_to_cloze("_a_ _b_", occlusion=None)
        second = convert_emphasis_to_cloze("_c_", occlusion=None)
        assert first == "{{c1::a}} {{c2::b}}"
        assert second == "{{c1::c}}"

    def test_no_emphasis_returns_none(self):
        assert convert_emphasis_to_cloze("Nothing to hide here.") is None

    def test_empty_text_returns_none(self):
        assert convert_emphasis_to_cloze("") is None

    def test_emphasis_at_field_edges(self):
        """Sentinel padding lets emphasis touch both ends of the field."""
        result = convert_emphasis_to_cloze("_start_ middle _end_", occlusion=None)
        assert result == "{{c1::start}} middle {{c2::end}}"

    def test_multiword_answer_kept_verbatim(self):
        result = convert_emphasis_to_cloze("Named after _Amerigo Vespucci_.", occlusion=None)
        assert result == "Named after {{c1::Amerigo Vespucci}}."

    def test_intraword_underscores_ignored(self):
        assert convert_emphasis_to_cloze("snake_case_name is a variable") is None

    def test_space_inside_marker_is_not_emphasis(self):
        assert convert_emphasis_to_cloze("a _ b _ c") is None

    def test_comment_glyphs_are_stripped(self):
        text = "# The _Volga_\n# flows south"
        result = convert_emphasis_to_cloze(text, occlusion=None)
        assert result == "The {{c1::Volga}}\nflows south"

    def test_custom_marker(self):
        result = convert_emphasis_to_cloze("The *Volga* flows", marker="*", occlusion=None)
        assert result == "The {{c1::Volga}} flows"

    def test_custom_marker_leaves_other_emphasis(self):
        result = convert_emphasis_to_cloze("The *Volga* and _Don_", marker="*", occlusion=None)
        assert result == "The {{c1::Volga}} and _Don_"

    def test_custom_occlusion(self):
        result = convert_emphasis_to_cloze("_abc_", occlusion=lambda text: text.upper())
        assert result == "{{c1::abc::ABC}}"

    def test_empty_mask_is_omitted(self):
        result = convert_emphasis_to_cloze("_abc_", occlusion=lambda text: "")
        assert result == "{{c1::abc}}"

    def test_parenthesised_emphasis(self):
        result = convert_emphasis_to_cloze("(_H2O_)", occlusion=None)
        assert result == "({{c1::H2O}})"


class TestEmphasisPattern:
    @pytest.mark.parametrize("marker", ["", "ab", " "])
    def test_invalid_marker(self, marker):
        with pytest.raises(ValueError):
            emphasis_pattern(marker)


class TestOcclusion:
    """Occlusion masks never shrink and never drop below three characters."""

    @pytest.mark.parametrize("text,expected", [
        ("a", "..."),
        ("ab", "..."),
        ("Paris", "...."),
        ("Amerigo Vespucci", "........"),
    ])
    def test_log_dots(self, text, expected):
        assert log_dots(text) == expected

    @pytest.mark.parametrize("strategy", [log_dots, length_dots, fixed_dots(2)])
    def test_monotonic_with_minimum(self, strategy):
        lengths = [len(strategy("x" * n)) for n in range(1, 300)]
        assert min(lengths) >= 3
        assert all(a <= b for a, b in zip(lengths, lengths[1:]))

    def test_log_dots_grows_slowly(self):
        assert len(log_dots("x" * 1000)) == 20

    def test_fixed_dots(self):
        assert fixed_dots(5)("anything") == "....."


class TestParseOcclusion:
    def test_named(self):
        assert parse_occlusion("log-dots") is log_dots
        assert parse_occlusion("length-dots") is length_dots

    def test_anki_default(self):
        assert parse_occlusion("anki") is None
        assert parse_occlusion(None) is None

    def test_fixed(self):
        assert parse_occlusion("dots:4")("abcdefgh") == "...."

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown occlusion"):
            parse_occlusion("stars")


def test_format_cloze():
    assert format_cloze(2, "x") == "{{c2::x}}"
    assert format_cloze(2, "x", "...") == "{{c2::x::...}}"
