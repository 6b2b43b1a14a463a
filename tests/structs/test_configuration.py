import pytest

from korral.structs.configuration import AccessSettings, BackoffPolicy, ExponentialDelay


def test_defaults():
    settings = AccessSettings()
    assert settings.authorization.backoff.max_attempts == 10
    assert settings.listing.concurrency == 10
    assert settings.awaiting.timeout == 120
    assert settings.awaiting.mode == 'watch'
    assert settings.metadata.reserved_domain == 'cloudfoundry.org'
    assert settings.metadata.validator is None


def test_settings_are_not_shared():
    settings1 = AccessSettings()
    settings2 = AccessSettings()
    settings1.listing.concurrency = 1
    assert settings2.listing.concurrency == 10


def test_exponential_delay_without_jitter():
    delay = ExponentialDelay(initial=1.0, factor=2.0, jitter=0)
    assert [delay(attempt) for attempt in [1, 2, 3, 4]] == [1.0, 2.0, 4.0, 8.0]


def test_exponential_delay_with_cap():
    delay = ExponentialDelay(initial=1.0, factor=2.0, jitter=0, cap=3.0)
    assert [delay(attempt) for attempt in [1, 2, 3, 4]] == [1.0, 2.0, 3.0, 3.0]


def test_exponential_delay_with_jitter():
    delay = ExponentialDelay(initial=1.0, factor=1.0, jitter=0.1)
    for _ in range(100):
        assert 1.0 <= delay(1) <= 1.1


def test_immediate_policy():
    policy = BackoffPolicy.immediate(3)
    assert policy.max_attempts == 3
    assert policy.delay(1) == 0
    assert policy.delay(100) == 0


@pytest.mark.parametrize('attempts', [0, -1])
def test_policy_needs_at_least_one_attempt(attempts):
    with pytest.raises(ValueError):
        BackoffPolicy(max_attempts=attempts)


def test_policy_is_immutable():
    policy = BackoffPolicy()
    with pytest.raises(Exception):
        policy.max_attempts = 100
