import logging
from datetime import date
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from .errors import AuthenticationRequired, QuotaExceeded
from .models import QuotaAllowance, QuotaCounter
from .sanitizer import normalize_email
from .schemas import QuotaDecision

logger = logging.getLogger(__name__)


def current_period(today: Optional[date] = None) -> date:
    today = today or timezone.now().date()
    return today.replace(day=1)


def monthly_limit(email: str) -> int:
    allowance = QuotaAllowance.objects.filter(email__iexact=email).first()
    if allowance:
        return allowance.monthly_limit
    return settings.GENERATION_MONTHLY_LIMIT


def current_usage(email: str, period: Optional[date] = None) -> int:
    counter = QuotaCounter.objects.filter(email=email, period=period or current_period()).first()
    return counter.used if counter else 0


def increment_usage(email: str, period: Optional[date] = None) -> None:
    """
    Count one generation for the email's current month.
    The increment is a single UPDATE so concurrent requests never lose a count.
    """
    email = normalize_email(email)
    period = period or current_period()
    if QuotaCounter.objects.filter(email=email, period=period).update(used=F('used') + 1):
        return
    try:
        with transaction.atomic():
            QuotaCounter.objects.create(email=email, period=period, used=1)
    except IntegrityError:
        # Another request created this month's row first
        QuotaCounter.objects.filter(email=email, period=period).update(used=F('used') + 1)


class QuotaGuard:
    """
    Read-only monthly allowance check, keyed by email rather than account id
    so re-registering under the same address does not reset consumption.
    """

    def check(self, caller_id: Optional[str], caller_email: Optional[str]) -> QuotaDecision:
        email = normalize_email(caller_email)
        if not email:
            # Usage is counted per email; a signed-in account without one cannot be metered
            if caller_id:
                raise AuthenticationRequired("An account email address is required to generate images")
            if not settings.GENERATION_ALLOW_ANONYMOUS:
                raise AuthenticationRequired("A signed-in account is required to generate images")
            logger.warning("Quota check bypassed for anonymous caller")
            return QuotaDecision(allowed=True, anonymous=True)

        limit = monthly_limit(email)
        used = current_usage(email)
        return QuotaDecision(allowed=used < limit, current=used, limit=limit, email=email)

    def enforce(self, caller_id: Optional[str], caller_email: Optional[str]) -> QuotaDecision:
        decision = self.check(caller_id, caller_email)
        if not decision.allowed:
            logger.info("Quota exceeded for %s: %d/%d", decision.email, decision.current, decision.limit)
            raise QuotaExceeded(current=decision.current, limit=decision.limit)
        return decision
