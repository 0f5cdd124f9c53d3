import pytest

from mirror.utils import mask_query


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://example.com/page", "https://example.com/page"),
        ("https://example.com/page?", "https://example.com/page?"),
        (
            "https://example.com/a?token=secret&x=1",
            "https://example.com/a?token=****&x=****",
        ),
        ("https://example.com/a?flag&sig=abc#frag", "https://example.com/a?flag&sig=****#frag"),
    ],
)
def test_mask_query(url, expected):
    assert mask_query(url) == expected
