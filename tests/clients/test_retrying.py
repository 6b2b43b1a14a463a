import json
from unittest.mock import Mock

import pytest

from korral.clients.errors import APIConflictError, APIForbiddenError, APINotFoundError, \
                                  APIServerError
from korral.clients.retrying import retried, retried_stream
from korral.structs.configuration import BackoffPolicy


def forbidden():
    return APIForbiddenError({'kind': 'Status', 'code': 403, 'reason': 'Forbidden'}, status=403)


def rejected():
    reason = json.dumps({'validationErrorType': 'InvalidRequest', 'message': 'no'})
    return APIForbiddenError({'kind': 'Status', 'code': 403, 'reason': reason}, status=403)


@pytest.fixture()
def underlying():
    return Mock(return_value='result')


@pytest.fixture()
def operation(underlying):

    @retried
    async def get_something(*, settings, logger, **kwargs):
        return underlying(**kwargs)

    return get_something


@pytest.mark.parametrize('denials', [0, 1, 2, 4])
async def test_success_after_denials(settings, logger, operation, underlying, denials):
    settings.authorization.backoff = BackoffPolicy.immediate(5)
    underlying.side_effect = [forbidden()] * denials + ['result']
    result = await operation(settings=settings, logger=logger, name='n')
    assert result == 'result'
    assert underlying.call_count == denials + 1


@pytest.mark.parametrize('max_attempts', [1, 2, 5])
async def test_denials_exhaust_the_attempts(settings, logger, operation, underlying, max_attempts):
    settings.authorization.backoff = BackoffPolicy.immediate(max_attempts)
    errors = [forbidden() for _ in range(max_attempts)]
    underlying.side_effect = errors
    with pytest.raises(APIForbiddenError) as err:
        await operation(settings=settings, logger=logger)
    assert err.value is errors[-1]
    assert underlying.call_count == max_attempts


@pytest.mark.parametrize('exc', [
    APINotFoundError(None, status=404),
    APIConflictError(None, status=409),
    APIServerError(None, status=500),
    ValueError('boo'),
    rejected(),
])
async def test_other_errors_are_not_retried(settings, logger, operation, underlying, exc):
    underlying.side_effect = exc
    with pytest.raises(type(exc)) as err:
        await operation(settings=settings, logger=logger)
    assert err.value is exc
    assert underlying.call_count == 1


async def test_arguments_are_passed_through(settings, logger, operation, underlying):
    await operation(settings=settings, logger=logger, resource='r', name='n')
    assert underlying.call_args_list[0][1] == {'resource': 'r', 'name': 'n'}


async def test_backoff_delays(settings, logger, operation, underlying, mocker):
    sleep = mocker.patch('asyncio.sleep')
    settings.authorization.backoff = BackoffPolicy(max_attempts=4, delay=lambda attempt: attempt * 10)
    underlying.side_effect = [forbidden(), forbidden(), forbidden(), 'result']
    await operation(settings=settings, logger=logger)
    assert [call[0][0] for call in sleep.call_args_list] == [10, 20, 30]


async def test_retries_are_logged(settings, logger, operation, underlying, assert_logs):
    settings.authorization.backoff = BackoffPolicy.immediate(2)
    underlying.side_effect = [forbidden(), forbidden()]
    with pytest.raises(APIForbiddenError):
        await operation(settings=settings, logger=logger, name='n')
    assert_logs([
        r"Operation attempt #1/2 is forbidden; will retry in 0.000s: get_something\(None 'n'\)",
        r"Operation attempt #2/2 is forbidden; escalating: get_something\(None 'n'\)",
    ])


@pytest.fixture()
def stream_fn(underlying):

    @retried_stream
    async def stream_something(*, settings, logger, **kwargs):
        for item in underlying(**kwargs):
            if isinstance(item, Exception):
                raise item
            yield item

    return stream_something


async def test_stream_retried_before_the_first_item(settings, logger, stream_fn, underlying):
    underlying.side_effect = [[forbidden()], [forbidden()], ['a', 'b']]
    items = [item async for item in stream_fn(settings=settings, logger=logger)]
    assert items == ['a', 'b']
    assert underlying.call_count == 3


async def test_stream_escalates_after_the_first_item(settings, logger, stream_fn, underlying):
    underlying.side_effect = [['a', forbidden()], ['b']]
    items = []
    with pytest.raises(APIForbiddenError):
        async for item in stream_fn(settings=settings, logger=logger):
            items.append(item)
    assert items == ['a']
    assert underlying.call_count == 1


async def test_stream_exhausts_the_attempts(settings, logger, stream_fn, underlying):
    settings.authorization.backoff = BackoffPolicy.immediate(2)
    underlying.side_effect = [[forbidden()], [forbidden()], ['a']]
    with pytest.raises(APIForbiddenError):
        async for _ in stream_fn(settings=settings, logger=logger):
            pass
    assert underlying.call_count == 2


async def test_stream_does_not_retry_webhook_rejections(settings, logger, stream_fn, underlying):
    underlying.side_effect = [[rejected()], ['a']]
    with pytest.raises(APIForbiddenError):
        async for _ in stream_fn(settings=settings, logger=logger):
            pass
    assert underlying.call_count == 1
