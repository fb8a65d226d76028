import pytest

from supportdesk.core.storage_keys import (
    comment_attachment_key,
    normalize_content_type,
    sanitize_file_name,
    ticket_attachment_key,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\kim\\report.pdf", "report.pdf"),
        ("quarterly report (final).pdf", "quarterly_report__final_.pdf"),
        ("보고서.pdf", "___.pdf"),
        ("", "file"),
        (None, "file"),
        ("logs/", "file"),
        ("..", "file"),
        ("a-b_c.1.txt", "a-b_c.1.txt"),
        (" report .pdf ", "_report_.pdf_"),
        ("   ", "file"),
    ],
)
def test_sanitize_file_name(raw, expected):
    assert sanitize_file_name(raw, max_length=120) == expected


def test_long_name_keeps_extension_at_exact_cap():
    name = "a" * 296 + ".png"
    assert len(name) == 300

    result = sanitize_file_name(name, max_length=120)

    assert len(result) == 120
    assert result.endswith(".png")
    assert result == "a" * 116 + ".png"


def test_long_name_without_extension_is_cut():
    assert sanitize_file_name("b" * 200, max_length=120) == "b" * 120


def test_trailing_dot_is_not_an_extension():
    result = sanitize_file_name("c" * 130 + ".", max_length=120)
    assert result == "c" * 120


def test_extension_longer_than_cap_is_not_preserved():
    name = "x." + "y" * 30
    result = sanitize_file_name(name, max_length=10)
    assert result == name[:10]


def test_name_at_cap_is_untouched():
    name = "d" * 116 + ".pdf"
    assert sanitize_file_name(name, max_length=120) == name


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("text/plain; charset=utf-8", "text/plain"),
        ("Application/PDF", "application/pdf"),
        ("  image/png  ", "image/png"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_content_type(raw, expected):
    assert normalize_content_type(raw) == expected


def test_object_keys_are_scoped_by_parent_and_id():
    assert ticket_attachment_key(ticket_id=7, attachment_id=42, file_name="a.pdf") == "tickets/7/attachments/42/a.pdf"
    assert (
        comment_attachment_key(ticket_id=7, comment_id=3, attachment_id=43, file_name="a.pdf")
        == "tickets/7/comments/3/attachments/43/a.pdf"
    )
