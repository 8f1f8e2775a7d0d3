"""
Tests for default query generation.
"""

from src.collector.queries import BASE_TEMPLATES, brand_from_domain, generate_queries_from_domain


class TestQueryGeneration:
    """Test the default question set."""

    def test_brand_from_domain(self):
        assert brand_from_domain("https://www.acme-shop.com/") == "acme-shop"
        assert brand_from_domain("") == ""

    def test_base_questions(self):
        queries = generate_queries_from_domain("example.com")
        assert len(queries) == len(BASE_TEMPLATES)
        assert queries[0].text == "what is example"
        assert queries[0].topic == "brand"

    def test_software_domains_get_integration_questions(self):
        texts = [q.text for q in generate_queries_from_domain("acme-software.com")]
        assert "acme-software API" in texts
        assert len(texts) == len(BASE_TEMPLATES) + 4

    def test_shop_domains_get_shop_questions(self):
        texts = [q.text for q in generate_queries_from_domain("bestshop.se")]
        assert "bestshop return policy" in texts

    def test_no_duplicates(self):
        texts = [q.text.lower() for q in generate_queries_from_domain("appstore.com")]
        assert len(texts) == len(set(texts))

    def test_empty_domain(self):
        assert generate_queries_from_domain("") == []
