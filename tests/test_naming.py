import dataclasses

import pytest

from cfr.naming import normalize_name
from cfr.settings import settings


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("web", "web"),
        ("My-Project", "my_project"),
        ("a--b..c", "a_b_c"),
        ("Media Stack", "media stack"),
        ("9lives", "9lives"),
        ("_private", "cfr__private"),
        ("-x-", "cfr__x_"),
        ("café", "caf_"),
    ],
)
def test_normalize_name(raw, expected):
    assert normalize_name(raw) == expected


@pytest.mark.parametrize("raw", ["web", "My-Project", "_private", "!!!", " lead", "a_-b", "Ünïcode", "x__y"])
def test_normalize_is_idempotent(raw):
    once = normalize_name(raw)
    assert normalize_name(once) == once


def test_custom_prefix():
    assert normalize_name(".hidden", prefix="p_") == "p__hidden"


def test_empty_name_is_rejected():
    with pytest.raises(ValueError):
        normalize_name("")


@pytest.mark.parametrize("prefix", ["_", "-x", "Cfr_", "a.b"])
def test_unstable_prefixes_are_rejected(prefix):
    with pytest.raises(ValueError):
        dataclasses.replace(settings, name_prefix=prefix)


@pytest.mark.parametrize("prefix", ["", "cfr_", "x", "unit "])
def test_canonical_prefixes_keep_normalization_idempotent(prefix):
    dataclasses.replace(settings, name_prefix=prefix)
    once = normalize_name("__Weird--Name", prefix=prefix)
    assert normalize_name(once, prefix=prefix) == once
