import aiohttp.web
import pytest

from korral.clients import api
from korral.clients.errors import APINotFoundError, APIServerError


async def test_server_errors_are_resent(
        resp_mocker, aresponses, hostname, settings, logger, assert_logs):

    settings.networking.error_backoffs = [0, 0]
    get_mock = resp_mocker(side_effect=[
        aresponses.Response(status=500),
        aresponses.Response(status=503),
        aiohttp.web.json_response({'kind': 'Something'}),
    ])
    for _ in range(3):
        aresponses.add(hostname, '/some/path', 'get', get_mock)

    result = await api.get('/some/path', settings=settings, logger=logger)
    assert result == {'kind': 'Something'}
    assert get_mock.call_count == 3
    assert_logs([
        r"Request attempt #1/3 failed; will retry: GET https://fake-host/some/path",
        r"Request attempt #2/3 failed; will retry: GET https://fake-host/some/path",
        r"Request attempt #3/3 succeeded: GET https://fake-host/some/path",
    ])


async def test_last_server_error_is_escalated(
        resp_mocker, aresponses, hostname, settings, logger, assert_logs):

    settings.networking.error_backoffs = [0]
    get_mock = resp_mocker(side_effect=[aresponses.Response(status=500) for _ in range(2)])
    for _ in range(2):
        aresponses.add(hostname, '/some/path', 'get', get_mock)

    with pytest.raises(APIServerError):
        await api.get('/some/path', settings=settings, logger=logger)
    assert get_mock.call_count == 2
    assert_logs([
        r"Request attempt #1/2 failed; will retry",
        r"Request attempt #2/2 failed; escalating",
    ])


async def test_client_errors_are_not_resent(
        resp_mocker, aresponses, hostname, settings, logger):

    settings.networking.error_backoffs = [0, 0]
    get_mock = resp_mocker(return_value=aresponses.Response(status=404))
    aresponses.add(hostname, '/some/path', 'get', get_mock)

    with pytest.raises(APINotFoundError):
        await api.get('/some/path', settings=settings, logger=logger)
    assert get_mock.call_count == 1


async def test_payload_and_headers_are_sent(
        resp_mocker, aresponses, hostname, settings, logger):

    patch_mock = resp_mocker(return_value=aiohttp.web.json_response({}))
    aresponses.add(hostname, '/some/path', 'patch', patch_mock)

    await api.patch('/some/path', payload={'spec': {'x': 1}},
                    headers={'Content-Type': 'application/merge-patch+json'},
                    settings=settings, logger=logger)
    request = patch_mock.call_args_list[0][0][0]
    assert request['data'] == {'spec': {'x': 1}}
    assert request.headers['Content-Type'] == 'application/merge-patch+json'
