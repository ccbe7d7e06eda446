"""
Category Classifier — maps a domain to a fixed website taxonomy.

Categories:
  WORK           — developer tooling, docs, collaboration suites
  SOCIAL         — social networks and messengers
  ENTERTAINMENT  — video, music and streaming
  NEWS           — news outlets
  SHOPPING       — retail
  OTHER          — anything the table does not cover
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List
from urllib.parse import urlparse


class WebsiteCategory(str, Enum):
    WORK = "work"
    SOCIAL = "social"
    ENTERTAINMENT = "entertainment"
    NEWS = "news"
    SHOPPING = "shopping"
    OTHER = "other"


# Order matters: the substring scan walks this table front to back,
# so the first category listed wins when several entries could match.
_CATEGORY_DOMAINS: Dict[WebsiteCategory, List[str]] = {
    WebsiteCategory.WORK: [
        "github.com", "gitlab.com", "bitbucket.org", "stackoverflow.com",
        "jira.com", "confluence.com", "notion.so", "trello.com", "asana.com",
        "slack.com", "teams.microsoft.com", "meet.google.com", "zoom.us",
        "docs.google.com", "office.com", "microsoft.com", "atlassian.com",
        "figma.com", "miro.com", "airtable.com", "monday.com", "linear.app",
    ],
    WebsiteCategory.SOCIAL: [
        "facebook.com", "twitter.com", "instagram.com", "linkedin.com",
        "reddit.com", "pinterest.com", "tumblr.com", "whatsapp.com",
        "telegram.org", "discord.com", "tiktok.com", "snapchat.com",
        "messenger.com", "wechat.com", "line.me", "viber.com",
    ],
    WebsiteCategory.ENTERTAINMENT: [
        "youtube.com", "netflix.com", "hulu.com", "disney.com", "disneyplus.com",
        "spotify.com", "twitch.tv", "vimeo.com", "dailymotion.com",
        "hbomax.com", "primevideo.com", "crunchyroll.com", "funimation.com",
        "soundcloud.com", "deezer.com", "tidal.com", "pandora.com",
    ],
    WebsiteCategory.NEWS: [
        "cnn.com", "bbc.com", "nytimes.com", "washingtonpost.com",
        "theguardian.com", "reuters.com", "apnews.com", "bloomberg.com",
        "wsj.com", "economist.com", "ft.com", "aljazeera.com",
        "npr.org", "foxnews.com", "nbcnews.com", "abcnews.go.com",
    ],
    WebsiteCategory.SHOPPING: [
        "amazon.com", "ebay.com", "walmart.com", "target.com",
        "bestbuy.com", "etsy.com", "aliexpress.com", "shopify.com",
        "wayfair.com", "homedepot.com", "ikea.com", "costco.com",
        "newegg.com", "zappos.com", "macys.com", "nordstrom.com",
    ],
}

_EXAMPLES: Dict[WebsiteCategory, List[str]] = {
    WebsiteCategory.WORK: ["github.com", "slack.com", "docs.google.com", "office.com"],
    WebsiteCategory.SOCIAL: ["facebook.com", "twitter.com", "instagram.com", "linkedin.com"],
    WebsiteCategory.ENTERTAINMENT: ["youtube.com", "netflix.com", "spotify.com", "twitch.tv"],
    WebsiteCategory.NEWS: ["cnn.com", "bbc.com", "nytimes.com", "reuters.com"],
    WebsiteCategory.SHOPPING: ["amazon.com", "ebay.com", "walmart.com", "etsy.com"],
}


class CategoryClassifier:
    """
    Table-driven classifier: exact match first, then a linear scan for a
    subdomain or substring hit.
    """

    def __init__(self, table: Dict[WebsiteCategory, List[str]] | None = None):
        self._domains: Dict[str, WebsiteCategory] = {}
        for category, domains in (table or _CATEGORY_DOMAINS).items():
            for domain in domains:
                # first registration wins so the scan order stays stable
                self._domains.setdefault(domain.lower(), WebsiteCategory(category))

    def categorize(self, domain: str) -> str:
        if not domain:
            return WebsiteCategory.OTHER.value
        domain = domain.lower()

        exact = self._domains.get(domain)
        if exact is not None:
            return exact.value

        for mapped, category in self._domains.items():
            if domain.endswith("." + mapped) or mapped in domain:
                return category.value

        return WebsiteCategory.OTHER.value

    def categorize_url(self, url: str) -> str:
        """Categorize an http(s) URL by hostname; anything else is "other"."""
        if not url or not url.startswith("http"):
            return WebsiteCategory.OTHER.value
        try:
            host = urlparse(url).hostname or ""
        except ValueError:
            return WebsiteCategory.OTHER.value
        return self.categorize(host)

    @staticmethod
    def categories() -> List[str]:
        return [c.value for c in WebsiteCategory]

    @staticmethod
    def examples_for(category: str) -> List[str]:
        try:
            return list(_EXAMPLES.get(WebsiteCategory(category), []))
        except ValueError:
            return []
