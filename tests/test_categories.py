"""Tests for the domain → category classifier."""

import pytest

from tabguard.rules.categories import CategoryClassifier, WebsiteCategory


@pytest.fixture(scope="module")
def classifier():
    return CategoryClassifier()


class TestCategorize:
    @pytest.mark.parametrize("domain,expected", [
        ("github.com", "work"),
        ("facebook.com", "social"),
        ("netflix.com", "entertainment"),
        ("reuters.com", "news"),
        ("etsy.com", "shopping"),
    ])
    def test_exact_match(self, classifier, domain, expected):
        assert classifier.categorize(domain) == expected

    def test_subdomain_match(self, classifier):
        assert classifier.categorize("m.youtube.com") == "entertainment"
        assert classifier.categorize("old.reddit.com") == "social"

    def test_case_insensitive(self, classifier):
        assert classifier.categorize("GitHub.COM") == "work"

    def test_specific_entry_beats_substring_scan(self, classifier):
        # exact hit on docs.google.com is checked before any scan
        assert classifier.categorize("docs.google.com") == "work"

    def test_unknown_and_empty_are_other(self, classifier):
        assert classifier.categorize("example.org") == "other"
        assert classifier.categorize("") == "other"

    def test_custom_table(self):
        custom = CategoryClassifier({WebsiteCategory.WORK: ["intranet.local"]})
        assert custom.categorize("wiki.intranet.local") == "work"
        assert custom.categorize("github.com") == "other"


class TestCategorizeUrl:
    def test_http_url(self, classifier):
        assert classifier.categorize_url("https://www.bbc.com/news/world") == "news"

    def test_non_http_url(self, classifier):
        assert classifier.categorize_url("chrome://newtab") == "other"
        assert classifier.categorize_url("") == "other"


class TestCatalogue:
    def test_categories(self):
        assert CategoryClassifier.categories() == [
            "work", "social", "entertainment", "news", "shopping", "other",
        ]

    def test_examples(self):
        assert "facebook.com" in CategoryClassifier.examples_for("social")
        assert CategoryClassifier.examples_for("other") == []
        assert CategoryClassifier.examples_for("gaming") == []
