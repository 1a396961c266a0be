import pytest

from bizcontacts.services.contact_normalizer import (
    is_generic_email,
    is_junk_email,
    normalize_email,
    normalize_phone,
)


@pytest.mark.parametrize("raw, expected", [
    ("name [at] domain [dot] com", "name@domain.com"),
    ("Name(at)Domain(dot)gr", "name@domain.gr"),
    ("info at cafe dot gr", "info@cafe.gr"),
    ("sales @ cafe . gr", "sales@cafe.gr"),
    ("mailto:Info@Cafe.gr?subject=Hi", "info@cafe.gr"),
    ("  office@cafe.gr. ", "office@cafe.gr"),
])
def test_normalize_email(raw, expected):
    assert normalize_email(raw) == expected
    assert normalize_email(expected) == expected


@pytest.mark.parametrize("raw", [None, "", "not an email", "logo@2x.png", "a@b", "@cafe.gr"])
def test_normalize_email_rejects(raw):
    assert normalize_email(raw) is None


def test_generic_and_junk_mailboxes():
    assert is_generic_email("info@cafe.gr")
    assert is_generic_email("Contact@cafe.gr")
    assert not is_generic_email("maria.papadopoulou@cafe.gr")
    assert is_junk_email("noreply@cafe.gr")
    assert is_junk_email("abc123@sentry.io")
    assert not is_junk_email("info@example.com")


@pytest.mark.parametrize("raw", ["210 322 7811", "+30 210 3227811", "0030 2103227811", "tel:+302103227811"])
def test_normalize_phone_to_e164(raw):
    assert normalize_phone(raw, "GR") == "+302103227811"
    assert normalize_phone("+302103227811", "GR") == "+302103227811"


def test_normalize_phone_mobile():
    assert normalize_phone("694 123 4567", "GR") == "+306941234567"


@pytest.mark.parametrize("raw", [None, "", "123", "+44 20 7946 0958", "call us"])
def test_normalize_phone_rejects_invalid_or_foreign(raw):
    assert normalize_phone(raw, "GR") is None
