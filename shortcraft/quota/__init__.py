from .limiter import QuotaDecision, QuotaLimiter, window_starts

__all__ = ["QuotaDecision", "QuotaLimiter", "window_starts"]
