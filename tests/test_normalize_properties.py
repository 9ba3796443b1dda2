"""Property-based tests for Atom/RSS normalization."""

from datetime import datetime, timedelta
from xml.sax.saxutils import escape

from hypothesis import given, settings
from hypothesis import strategies as st

from tagfeed.models import DATE_FORMAT, format_date
from tagfeed.normalize import clean_text, normalize, parse_document

WORDS = st.text(
    alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd")),
    min_size=1,
    max_size=12,
)
PHRASES = st.lists(WORDS, min_size=1, max_size=5).map(" ".join)
SLUGS = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-", min_size=1, max_size=16)

DATES = st.datetimes(min_value=datetime(1990, 1, 1), max_value=datetime(2035, 12, 31))
ANY_DATES = st.datetimes(min_value=datetime(1, 1, 1), max_value=datetime(9998, 12, 31))


def atom_document(entry_id, title, link, published, body, body_type):
    return f"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Feed</title>
  <entry>
    <id>{escape(entry_id)}</id>
    <title>{escape(title)}</title>
    <link rel="alternate" href="{escape(link)}"/>
    <published>{published.strftime(DATE_FORMAT)}</published>
    <content type="{body_type}">{escape(body)}</content>
  </entry>
</feed>""".encode()


def rss_document(entry_id, title, link, published, body):
    return f"""<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0">
  <channel>
    <title>Feed</title>
    <item>
      <guid isPermaLink="false">{escape(entry_id)}</guid>
      <title>{escape(title)}</title>
      <link>{escape(link)}</link>
      <pubDate>{published.strftime("%a, %d %b %Y %H:%M:%S GMT")}</pubDate>
      <description>{escape(body)}</description>
    </item>
  </channel>
</rss>""".encode()


class TestNormalizeProperties:
    """Property-based tests for the normalizer."""

    @settings(max_examples=50, deadline=None)
    @given(SLUGS, PHRASES, SLUGS, DATES, PHRASES, st.sampled_from(["text", "html"]))
    def test_rss_atom_equivalence(self, entry_id, title, slug, published, body, body_type):
        """
        Property: Atom and RSS documents with the same logical content
        normalize to entries that differ only in content_type.
        """
        link = f"https://example.com/{slug}"
        atom = normalize(
            "https://example.com/feed",
            parse_document(atom_document(entry_id, title, link, published, body, body_type)),
        ).entries[0]
        rss = normalize(
            "https://example.com/feed",
            parse_document(rss_document(entry_id, title, link, published, body)),
        ).entries[0]

        assert (atom.id, atom.title, atom.link, atom.date, atom.content, atom.tags) == (
            rss.id,
            rss.title,
            rss.link,
            rss.date,
            rss.content,
            rss.tags,
        )
        assert atom.date == format_date(published)
        assert rss.content_type is None
        assert atom.content_type == ("html" if body_type == "html" else None)

    @given(st.text())
    def test_clean_text_has_no_newlines_or_tabs(self, text):
        """Property: cleaned text has no surrounding whitespace and no newline/tab runs."""
        cleaned = clean_text(text)

        assert "\n" not in cleaned
        assert "\t" not in cleaned
        assert cleaned == cleaned.strip()

    @given(st.text())
    def test_clean_text_is_idempotent(self, text):
        """Property: cleaning twice changes nothing."""
        assert clean_text(clean_text(text)) == clean_text(text)

    @given(ANY_DATES, ANY_DATES)
    def test_format_date_sorts_chronologically(self, value, other):
        """Property: normalized dates compare lexically like the datetimes they encode."""
        later = value + timedelta(seconds=1)

        assert format_date(value) < format_date(later)
        assert (format_date(value) < format_date(other)) == (
            value.replace(microsecond=0) < other.replace(microsecond=0)
        )
