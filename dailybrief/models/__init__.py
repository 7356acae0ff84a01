from dailybrief.models.ad import Ad, AdStatus, AdTargeting, HouseAd, HouseAdType
from dailybrief.models.base import Base
from dailybrief.models.content import Article, ArticleStatus, NeighborhoodBrief
from dailybrief.models.job_run import JobRun
from dailybrief.models.neighborhood import ComboNeighborhood, Neighborhood
from dailybrief.models.recipient import (
    NewsletterSubscriber,
    Profile,
    RecipientSource,
    UserNeighborhoodPreference,
)
from dailybrief.models.send_log import (
    DigestSend,
    DigestType,
    InstantResendLog,
    ResendTrigger,
    SendTrigger,
)

__all__ = [
    "Base",
    "Neighborhood",
    "ComboNeighborhood",
    "Profile",
    "UserNeighborhoodPreference",
    "NewsletterSubscriber",
    "RecipientSource",
    "Article",
    "ArticleStatus",
    "NeighborhoodBrief",
    "Ad",
    "AdStatus",
    "AdTargeting",
    "HouseAd",
    "HouseAdType",
    "DigestSend",
    "DigestType",
    "SendTrigger",
    "ResendTrigger",
    "InstantResendLog",
    "JobRun",
]
