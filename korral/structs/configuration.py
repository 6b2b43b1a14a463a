"""
All configuration flags, options, settings to fine-tune the access layer.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).

The settings are constructed once by the embedding application and passed
explicitly into every operation as ``settings=...``. There is no global
instance: tests and embedders substitute their own (e.g. with zero delays).
"""
import dataclasses
import random
from typing import Callable, Iterable, Optional

from typing_extensions import Literal

# A pluggable validator of label/annotation keys: raises `ValueError` with the reason.
KeyValidator = Callable[[str], None]


@dataclasses.dataclass(frozen=True)
class ExponentialDelay:
    """
    A delay growing with every failed attempt, with some random jitter.

    The attempt numbers start with 1 (the delay after the first failure).
    """
    initial: float = 0.05
    factor: float = 1.15
    jitter: float = 0.1
    cap: Optional[float] = None

    def __call__(self, attempt: int) -> float:
        delay = self.initial * self.factor ** max(0, attempt - 1)
        delay = min(delay, self.cap) if self.cap is not None else delay
        return delay * (1 + self.jitter * random.random())


@dataclasses.dataclass(frozen=True)
class BackoffPolicy:
    """
    How persistently to retry the transient authorization denials.

    The first attempt counts as attempt #1, so ``max_attempts=1`` means
    no retries at all. The delay function gets the number of the failed
    attempt and returns the seconds to sleep before the next one.
    """
    max_attempts: int = 10
    delay: Callable[[int], float] = dataclasses.field(default_factory=ExponentialDelay)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"At least one attempt is needed; got {self.max_attempts!r}.")

    @classmethod
    def immediate(cls, max_attempts: int) -> "BackoffPolicy":
        """ A policy without delays, mostly for tests. """
        return cls(max_attempts=max_attempts, delay=lambda attempt: 0)


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for each request to the store's API (except for the watch-streams).
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for the connection establishment; ``None`` means no limit.
    """

    error_backoffs: Iterable[float] = (1, 1, 2, 3)
    """
    Backoffs of the transport-level retries (connection errors & HTTP 5xx).

    The number of backoffs is the number of retries; the last error escalates.
    These retries are independent of the authorization retries below:
    a request can be retried on both levels.
    """


@dataclasses.dataclass
class AuthorizationSettings:

    backoff: BackoffPolicy = dataclasses.field(default_factory=BackoffPolicy)
    """
    How to retry the operations denied as "forbidden" while the permission
    grants are still propagating. Only HTTP 403 without a webhook's verdict
    is retried; all other errors are returned immediately.
    """


@dataclasses.dataclass
class ListingSettings:

    concurrency: int = 10
    """
    How many namespaces are listed in parallel in a multi-namespace listing.
    """


@dataclasses.dataclass
class AwaitingSettings:

    timeout: float = 120
    """
    How long to wait for a condition by default (seconds).
    """

    mode: Literal['watch', 'poll'] = 'watch'
    """
    Whether to wait by watching the object (``"watch"``, the default),
    or by re-reading it periodically (``"poll"``) if watching is unavailable.
    """

    poll_interval: float = 1.0
    """
    A base interval between the re-reads in the polling mode (seconds).
    """

    poll_jitter: float = 0.2
    """
    A random share of the interval added to every polling sleep (0.2 means 0-20%).
    """


@dataclasses.dataclass
class WatchingSettings:

    server_timeout: Optional[float] = None
    """
    The maximum duration of one streaming request. Patched in some tests.
    If ``None``, then obeys the server-side timeouts (they seem to be random).
    """

    client_timeout: Optional[float] = None
    """
    An ``aiohttp`` client timeout for the watch-stream; ``None`` means forever.
    """

    connect_timeout: Optional[float] = None
    """
    An ``aiohttp`` connection timeout for the watch-stream requests.
    If not set, the networking's connect & request timeouts are used.
    """

    reconnect_backoff: float = 0.1
    """
    How long should a pause be between the watch-requests (to prevent API flooding).
    """


@dataclasses.dataclass
class MetadataSettings:

    reserved_domain: str = 'cloudfoundry.org'
    """
    The labels & annotations in this domain and its subdomains are reserved
    for the system and cannot be set or removed by the callers.
    """

    validator: Optional[KeyValidator] = None
    """
    A custom validator of the changing keys. If ``None``, the default one
    checks the qualified-name format and the reserved domain above.
    """


@dataclasses.dataclass
class AccessSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    authorization: AuthorizationSettings = dataclasses.field(default_factory=AuthorizationSettings)
    listing: ListingSettings = dataclasses.field(default_factory=ListingSettings)
    awaiting: AwaitingSettings = dataclasses.field(default_factory=AwaitingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    metadata: MetadataSettings = dataclasses.field(default_factory=MetadataSettings)
