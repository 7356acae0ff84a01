"""Public URL paths for neighborhoods and articles.

Neighborhood ids carry a city prefix (``nyc-west-village``); the public
path uses the city name slug and the rest of the id:
``/new-york/west-village/<article-slug>``.
"""

import re

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(text: str, max_length: int | None = None) -> str:
    """Lowercase, collapse non-alphanumerics to single hyphens, trim hyphens."""
    slug = _NON_SLUG.sub("-", text.lower()).strip("-")
    if max_length is not None:
        slug = slug[:max_length].rstrip("-")
    return slug


def neighborhood_path(neighborhood_id: str, city: str | None) -> str:
    prefix, _, rest = neighborhood_id.partition("-")
    city_slug = slugify(city) if city else prefix
    return f"/{city_slug}/{rest or prefix}"


def article_path(neighborhood_id: str, city: str | None, article_slug: str) -> str:
    return f"{neighborhood_path(neighborhood_id, city)}/{article_slug}"


def email_link(base_url: str, path: str) -> str:
    """Absolute link tagged as coming from the email."""
    return f"{base_url}{path}?ref=email"
