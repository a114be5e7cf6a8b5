"""Fixed articles that are always part of the news feed."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from ..data.models import NewsCategory, NewsItem

# (id, title, summary, source, url, hours ago, category)
_ARTICLES = [
    (
        "1",
        "Pi Network Announces New Mainnet Features",
        "The Pi Core Team has announced several new features coming to the Pi Mainnet, "
        "including enhanced security measures and improved transaction speeds.",
        "Pi Network Blog",
        "https://minepi.com/blog/example",
        2,
        NewsCategory.ANNOUNCEMENTS,
    ),
    (
        "2",
        "Community Spotlight: Pi Hackathon Winners",
        "Check out the innovative projects that won the recent Pi Network Hackathon, "
        "showcasing the creativity and technical skills of the Pi community.",
        "Pi Community Forum",
        "https://community.minepi.com/example",
        12,
        NewsCategory.COMMUNITY,
    ),
    (
        "3",
        "Pi SDK Update: New Developer Tools Released",
        "Pi Network has released new developer tools to help build applications on the "
        "Pi ecosystem, including improved documentation and testing frameworks.",
        "Pi Developer Portal",
        "https://developers.minepi.com/example",
        24,
        NewsCategory.DEVELOPMENT,
    ),
    (
        "4",
        "Pi Network Partners with Major E-commerce Platform",
        "A new partnership has been announced that will allow Pi cryptocurrency to be used "
        "for purchases on a major e-commerce platform, expanding the utility of Pi.",
        "Crypto News Daily",
        "https://cryptonews.com/example",
        36,
        NewsCategory.ANNOUNCEMENTS,
    ),
    (
        "5",
        "Community-Led Pi Merchant Directory Launches",
        "A group of Pi pioneers has created a comprehensive directory of merchants accepting "
        "Pi as payment, making it easier for users to spend their Pi.",
        "Pi Community Forum",
        "https://community.minepi.com/example2",
        48,
        NewsCategory.COMMUNITY,
    ),
]


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def mock_articles(now: Optional[datetime] = None) -> List[NewsItem]:
    """Build the fixed articles, dated relative to ``now``."""
    now = now or datetime.now(timezone.utc)
    return [
        NewsItem(
            id=article_id,
            title=title,
            summary=summary,
            source=source,
            url=url,
            published_at=to_iso(now - timedelta(hours=hours)),
            category=category,
        )
        for article_id, title, summary, source, url, hours, category in _ARTICLES
    ]
