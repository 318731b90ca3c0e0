"""Store key layout for rate limit buckets."""

from quotaguard.services.limiter.models import BucketKeys

PURPOSE_QUOTA = "Quota"
PURPOSE_REMAINING = "Remaining"
PURPOSE_RESET = "Reset"


class KeyNamespace:
    """Maps (purpose, identifier) to a store key.

    Key format:
    - {prefix}:Quota:{identifier} - window ceiling
    - {prefix}:Remaining:{identifier} - requests left in the window
    - {prefix}:Reset:{identifier} - epoch seconds when the window ends
    """

    def __init__(self, prefix: str = "RateLimit") -> None:
        self.prefix = prefix

    def key(self, purpose: str, identifier: str) -> str:
        return f"{self.prefix}:{purpose}:{identifier}"

    def keys_for(self, identifier: str) -> BucketKeys:
        return BucketKeys(
            quota=self.key(PURPOSE_QUOTA, identifier),
            remaining=self.key(PURPOSE_REMAINING, identifier),
            reset=self.key(PURPOSE_RESET, identifier),
        )
