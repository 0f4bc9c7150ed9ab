"""Service modules for ProPredict API."""

from propredict.services.auth import AuthService, auth_service
from propredict.services.football_api import FootballApiClient, football_api
from propredict.services.onesignal import OneSignalClient, onesignal
from propredict.services.stripe_service import StripeService, stripe_service

__all__ = [
    "AuthService",
    "auth_service",
    "FootballApiClient",
    "football_api",
    "OneSignalClient",
    "onesignal",
    "StripeService",
    "stripe_service",
]
