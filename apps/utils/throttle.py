from rest_framework.throttling import UserRateThrottle


class BurstRateThrottle(UserRateThrottle):
    """
    Short window protection (double-clicks, scripted retries on checkout/payment).
    Scope: 'burst' (Configured in settings)
    """
    scope = 'burst'


class SustainedRateThrottle(UserRateThrottle):
    """
    General API usage.
    """
    scope = 'sustained'
