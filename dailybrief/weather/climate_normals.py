"""Monthly climate normals (average high temperature, Celsius).

Used to flag unseasonably warm or cold days and good weekend outlooks.
Keyed by city name; months are 1-12. Cities missing from the table simply
never produce anomaly stories.

Source: weatherspark.com / climate-data.org historical averages.
"""

# Average high per month [Jan..Dec] in Celsius
CLIMATE_NORMALS: dict[str, tuple[int, ...]] = {
    # North America - East Coast
    "New York": (4, 5, 10, 18, 23, 28, 31, 30, 26, 19, 13, 6),
    "Washington DC": (6, 8, 13, 20, 25, 30, 33, 32, 28, 21, 14, 8),
    "Miami": (25, 26, 27, 29, 31, 32, 33, 33, 32, 30, 28, 26),
    "Palm Beach": (25, 26, 27, 29, 31, 32, 33, 33, 32, 30, 28, 26),
    "Greenwich": (3, 5, 10, 17, 22, 27, 30, 29, 25, 18, 12, 6),
    # North America - Central & West
    "Chicago": (-1, 1, 8, 15, 21, 27, 29, 28, 25, 17, 9, 2),
    "Aspen": (-2, 0, 5, 10, 17, 23, 27, 26, 21, 14, 5, -1),
    "Los Angeles": (20, 20, 21, 22, 23, 25, 28, 29, 28, 26, 22, 20),
    "San Francisco": (14, 16, 17, 18, 19, 21, 22, 22, 23, 21, 17, 14),
    # North America - Vacation
    "The Hamptons": (4, 5, 9, 15, 20, 25, 28, 28, 24, 18, 12, 6),
    "Nantucket": (3, 4, 7, 12, 17, 22, 26, 26, 22, 16, 11, 6),
    "Martha's Vineyard": (4, 4, 8, 13, 18, 23, 27, 27, 23, 17, 12, 6),
    # Canada
    "Vancouver": (6, 8, 10, 13, 17, 20, 23, 23, 19, 14, 9, 6),
    "Toronto": (-1, 0, 5, 12, 19, 25, 28, 27, 22, 15, 8, 2),
    # UK & Ireland
    "London": (8, 9, 12, 15, 18, 22, 25, 24, 21, 16, 11, 8),
    "Dublin": (8, 8, 10, 12, 15, 18, 20, 19, 17, 14, 10, 8),
    # Continental Europe
    "Paris": (7, 8, 13, 16, 20, 24, 26, 26, 22, 16, 11, 7),
    "Stockholm": (-1, 0, 4, 10, 16, 21, 23, 22, 17, 10, 5, 1),
    "Saint-Tropez": (11, 12, 14, 17, 21, 25, 29, 28, 25, 20, 15, 12),
    "Marbella": (16, 17, 19, 20, 23, 27, 30, 30, 28, 23, 19, 17),
    "Sylt": (3, 3, 6, 10, 15, 18, 20, 20, 18, 13, 8, 5),
    # Caribbean
    "St. Barts": (28, 28, 29, 29, 30, 31, 31, 31, 31, 31, 30, 29),
    # Asia
    "Tokyo": (10, 11, 14, 19, 24, 26, 30, 31, 28, 22, 17, 12),
    "Hong Kong": (19, 19, 22, 26, 29, 31, 32, 32, 31, 28, 25, 20),
    "Singapore": (30, 31, 32, 32, 32, 32, 31, 31, 31, 31, 31, 30),
    # Oceania (southern hemisphere)
    "Sydney": (27, 27, 25, 23, 20, 17, 17, 18, 20, 22, 24, 26),
    "Auckland": (24, 24, 23, 20, 17, 15, 14, 15, 16, 18, 20, 22),
    "Queenstown": (22, 22, 19, 15, 11, 8, 7, 9, 12, 15, 18, 20),
    # Africa (southern hemisphere)
    "Cape Town": (27, 28, 26, 23, 20, 18, 17, 18, 19, 21, 24, 26),
}

_BY_LOWER_NAME = {city.lower(): highs for city, highs in CLIMATE_NORMALS.items()}


def get_climate_normal(city_name: str | None, month: int) -> int | None:
    """Average high (C) for a city and month (1-12), or None if unknown."""
    if not city_name or not 1 <= month <= 12:
        return None
    highs = _BY_LOWER_NAME.get(city_name.strip().lower())
    if highs is None:
        return None
    return highs[month - 1]
