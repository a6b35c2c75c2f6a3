"""Tests for lxdclient/rest.py - LXD REST client."""

import base64
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from lxdclient.certs import Certificate
from lxdclient.client import ClientError, ErrorKind, InstanceSpec
from lxdclient.rest import LXDClient
from conftest import CERT_BODY, CERT_PEM


def _response(payload, status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    resp.text = ''
    resp.reason = 'OK' if status < 400 else 'Error'
    return resp


def sync(metadata=None):
    return _response({'type': 'sync', 'status_code': 200, 'metadata': metadata})


def error(code, message):
    return _response({'type': 'error', 'error_code': code, 'error': message}, status=code)


@pytest.fixture
def session():
    s = MagicMock(spec=requests.Session)
    s.headers = {}
    return s


@pytest.fixture
def client(session):
    c = LXDClient('https://10.0.8.1:8443/', session=session)
    yield c
    c.close()


def _calls(session):
    return [(c.args[0], c.args[1]) for c in session.request.call_args_list]


class TestTransport:
    """Envelope handling and error classification."""

    def test_sync_returns_metadata(self, client, session):
        session.request.return_value = sync({'fingerprint': 'abc', 'name': 'n'})
        info = client.cert_by_fingerprint('abc')
        assert info.fingerprint == 'abc'
        assert info.name == 'n'
        assert _calls(session) == [('GET', 'https://10.0.8.1:8443/1.0/certificates/abc')]

    def test_404_is_not_found(self, client, session):
        session.request.return_value = error(404, 'not found')
        with pytest.raises(ClientError) as exc_info:
            client.cert_by_fingerprint('abc')
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.is_not_found

    def test_409_is_already_exists(self, client, session):
        session.request.return_value = error(409, 'Certificate already in trust store')
        cert = Certificate(name='c', cert_pem=CERT_PEM)
        with pytest.raises(ClientError) as exc_info:
            client.add_cert(cert)
        assert exc_info.value.is_already_exists

    def test_500_is_other(self, client, session):
        session.request.return_value = error(500, 'boom')
        with pytest.raises(ClientError) as exc_info:
            client.remove_cert_by_fingerprint('abc')
        assert exc_info.value.kind is ErrorKind.OTHER
        assert 'boom' in str(exc_info.value)

    def test_connection_error_is_other(self, client, session):
        session.request.side_effect = requests.exceptions.ConnectionError('refused')
        with pytest.raises(ClientError) as exc_info:
            client.has_profile('juju-x')
        assert exc_info.value.kind is ErrorKind.OTHER
        assert 'refused' in str(exc_info.value)

    def test_non_object_error_body(self, client, session):
        resp = _response(['bad gateway'], status=502)
        resp.reason = 'Bad Gateway'
        session.request.return_value = resp
        with pytest.raises(ClientError) as exc_info:
            client.cert_by_fingerprint('abc')
        assert exc_info.value.kind is ErrorKind.OTHER
        assert exc_info.value.status == 502
        assert 'Bad Gateway' in str(exc_info.value)

    def test_non_object_success_body(self, client, session):
        session.request.return_value = _response('ok')
        assert client.has_profile('juju-x') is True

    def test_async_waits_on_operation(self, client, session):
        session.request.side_effect = [
            _response({'type': 'async', 'operation': '/1.0/operations/op1'}),
            sync({'status': 'Success', 'err': ''}),
        ]
        client.remove_cert_by_fingerprint('abc')
        assert _calls(session)[1] == ('GET', 'https://10.0.8.1:8443/1.0/operations/op1/wait')

    def test_async_failure(self, client, session):
        session.request.side_effect = [
            _response({'type': 'async', 'operation': '/1.0/operations/op1'}),
            sync({'status': 'Failure', 'err': 'disk full'}),
        ]
        with pytest.raises(ClientError) as exc_info:
            client.remove_cert_by_fingerprint('abc')
        assert 'disk full' in str(exc_info.value)


class TestSessionSetup:
    """Certificate wiring into the requests session."""

    def test_no_server_cert_disables_verify(self, session):
        c = LXDClient('https://h:8443', session=session)
        assert session.verify is False
        c.close()

    def test_server_cert_pinned(self, session):
        c = LXDClient('https://h:8443', server_cert=CERT_PEM, session=session)
        assert session.verify.endswith('server.crt')
        c.close()

    def test_client_cert_files_private(self, session):
        cert = Certificate(name='c', cert_pem=CERT_PEM, key_pem=b'key')
        c = LXDClient('https://h:8443', client_cert=cert, session=session)
        cert_file, key_file = session.cert
        assert Path(key_file).read_bytes() == b'key'
        assert Path(key_file).stat().st_mode & 0o777 == 0o600
        c.close()
        assert not Path(cert_file).exists()


class TestCertificates:

    def test_add_cert_sends_der(self, client, session):
        session.request.return_value = sync()
        client.add_cert(Certificate(name='juju-client', cert_pem=CERT_PEM))
        body = session.request.call_args.kwargs['json']
        assert body['type'] == 'client'
        assert body['name'] == 'juju-client'
        assert base64.b64decode(body['certificate']) == CERT_BODY


class TestProfiles:

    def test_has_profile_true(self, client, session):
        session.request.return_value = sync({'name': 'juju-x'})
        assert client.has_profile('juju-x') is True

    def test_has_profile_false_on_404(self, client, session):
        session.request.return_value = error(404, 'not found')
        assert client.has_profile('juju-x') is False

    def test_has_profile_other_error_raises(self, client, session):
        session.request.return_value = error(403, 'forbidden')
        with pytest.raises(ClientError):
            client.has_profile('juju-x')

    def test_create_profile(self, client, session):
        session.request.return_value = sync()
        client.create_profile('juju-x', {'boot.autostart': 'true'})
        assert session.request.call_args.kwargs['json'] == {
            'name': 'juju-x',
            'config': {'boot.autostart': 'true'},
        }


class TestHTTPSListener:

    def test_already_listening(self, client, session):
        session.request.return_value = sync({'config': {'core.https_address': '[::]:8443'}})
        client.enable_https_listener()
        assert [m for m, _ in _calls(session)] == ['GET']

    def test_enables_ipv6_any(self, client, session):
        session.request.side_effect = [sync({'config': {}}), sync()]
        client.enable_https_listener()
        assert session.request.call_args.kwargs['json'] == {'config': {'core.https_address': '[::]'}}

    def test_falls_back_to_ipv4(self, client, session):
        session.request.side_effect = [sync({'config': {}}), error(500, 'ipv6 disabled'), sync()]
        client.enable_https_listener()
        assert session.request.call_args.kwargs['json'] == {'config': {'core.https_address': '0.0.0.0'}}

    def test_both_fail(self, client, session):
        session.request.side_effect = [sync({'config': {}}), error(500, 'a'), error(500, 'b')]
        with pytest.raises(ClientError):
            client.enable_https_listener()


class TestInstances:

    def test_instances_with_prefix_filters_and_strips_user_keys(self, client, session):
        session.request.return_value = sync([
            {'name': 'juju-abc123-0', 'status': 'Running',
             'config': {'user.juju-model-uuid': 'm1', 'limits.cpu': '2'}},
            {'name': 'other', 'status': 'Running', 'config': {}},
        ])
        instances = client.instances_with_prefix('juju-')
        assert [i.id for i in instances] == ['juju-abc123-0']
        assert dict(instances[0].metadata) == {'juju-model-uuid': 'm1'}
        assert session.request.call_args.kwargs['params'] == {'recursion': 1}

    def test_remove_instances_rejects_foreign_prefix(self, client, session):
        with pytest.raises(ClientError):
            client.remove_instances('juju-', 'juju-1', 'other-2')
        session.request.assert_not_called()

    def test_remove_instances_stops_running(self, client, session):
        session.request.side_effect = [
            sync({'status': 'Running'}), sync(), sync(),
            sync({'status': 'Stopped'}), sync(),
        ]
        client.remove_instances('juju-', 'juju-1', 'juju-2')
        assert _calls(session) == [
            ('GET', 'https://10.0.8.1:8443/1.0/containers/juju-1/state'),
            ('PUT', 'https://10.0.8.1:8443/1.0/containers/juju-1/state'),
            ('DELETE', 'https://10.0.8.1:8443/1.0/containers/juju-1'),
            ('GET', 'https://10.0.8.1:8443/1.0/containers/juju-2/state'),
            ('DELETE', 'https://10.0.8.1:8443/1.0/containers/juju-2'),
        ]

    def test_create_instance(self, client, session):
        session.request.side_effect = [
            sync(), sync(),
            sync({'name': 'juju-abc123-0', 'status': 'Running',
                  'config': {'user.juju-model-uuid': 'm1'}}),
        ]
        spec = InstanceSpec(
            name='juju-abc123-0',
            profiles=('default', 'juju-controller'),
            metadata={'juju-model-uuid': 'm1'},
        )
        inst = client.create_instance(spec)
        body = session.request.call_args_list[0].kwargs['json']
        assert body['profiles'] == ['default', 'juju-controller']
        assert body['config'] == {'user.juju-model-uuid': 'm1'}
        assert body['source']['alias'] == '22.04'
        assert inst.id == 'juju-abc123-0'
        assert inst.metadata['juju-model-uuid'] == 'm1'
