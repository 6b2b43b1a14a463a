import aiohttp.web
import pytest

from korral.clients.creating import create_obj
from korral.clients.errors import APIConflictError, APIError


async def test_simple_body_with_arguments(
        resp_mocker, aresponses, hostname, settings, logger, resource, namespace):

    post_mock = resp_mocker(return_value=aiohttp.web.json_response({'metadata': {'uid': 'u'}}))
    aresponses.add(hostname, resource.get_url(namespace=namespace), 'post', post_mock)

    body = {'x': 'y'}
    result = await create_obj(settings=settings, logger=logger,
                              resource=resource, namespace=namespace, name='name1', body=body)

    assert result == {'metadata': {'uid': 'u'}}
    assert post_mock.call_count == 1

    data = post_mock.call_args_list[0][0][0]['data']  # [callidx][args/kwargs][argidx]
    expected_meta = {'name': 'name1', 'namespace': 'ns'} if resource.namespaced else {'name': 'name1'}
    assert data == {'x': 'y', 'metadata': expected_meta,
                    'apiVersion': 'korifi.cloudfoundry.org/v1alpha1', 'kind': 'CFApp'}


async def test_full_body_with_identifiers(
        resp_mocker, aresponses, hostname, settings, logger, resource, namespace):

    post_mock = resp_mocker(return_value=aiohttp.web.json_response({}))
    aresponses.add(hostname, resource.get_url(namespace=namespace), 'post', post_mock)

    body = {'apiVersion': 'v9', 'kind': 'K', 'x': 'y',
            'metadata': {'name': 'name1', 'namespace': namespace}}
    await create_obj(settings=settings, logger=logger, resource=resource, body=body)

    assert post_mock.call_count == 1
    data = post_mock.call_args_list[0][0][0]['data']
    assert data == {'apiVersion': 'v9', 'kind': 'K', 'x': 'y',
                    'metadata': {'name': 'name1', 'namespace': namespace}}


@pytest.mark.parametrize('status', [400, 401, 404, 409, 500, 666])
async def test_raises_api_errors(
        resp_mocker, aresponses, hostname, settings, logger, status, resource, namespace):

    post_mock = resp_mocker(return_value=aresponses.Response(status=status))
    aresponses.add(hostname, resource.get_url(namespace=namespace), 'post', post_mock)

    with pytest.raises(APIError) as e:
        await create_obj(settings=settings, logger=logger,
                         resource=resource, namespace=namespace, name='name1', body={})
    assert e.value.status == status
    assert post_mock.call_count == 1


async def test_conflicts_are_not_retried(
        resp_mocker, aresponses, hostname, settings, logger, resource, namespace):

    post_mock = resp_mocker(return_value=aresponses.Response(status=409))
    aresponses.add(hostname, resource.get_url(namespace=namespace), 'post', post_mock)

    with pytest.raises(APIConflictError):
        await create_obj(settings=settings, logger=logger,
                         resource=resource, namespace=namespace, name='name1')
    assert post_mock.call_count == 1
