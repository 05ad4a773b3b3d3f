"""
Unit tests for address parsing, peer chain retrieval and trust bundles.
"""
import os
import shutil
import socket
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from certscope.errors import ConnectError
from certscope.transport import DEFAULT_PORT, fetch_peer_chain, parse_address
from certscope.trust import default_trust_anchors, load_bundle

from certfactory import Hierarchy, to_der, to_pem


class TestParseAddress(unittest.TestCase):

    def test_host_only(self):
        self.assertEqual(parse_address('example.com'), ('example.com', DEFAULT_PORT))

    def test_host_and_port(self):
        self.assertEqual(parse_address('example.com:8443'), ('example.com', 8443))

    def test_ipv6(self):
        self.assertEqual(parse_address('[2001:db8::1]:993'), ('2001:db8::1', 993))
        self.assertEqual(parse_address('[::1]'), ('::1', DEFAULT_PORT))

    def test_invalid_port(self):
        for address in ('example.com:https', 'example.com:0', 'example.com:70000'):
            with self.assertRaises(ConnectError):
                parse_address(address)

    def test_empty(self):
        with self.assertRaises(ConnectError):
            parse_address('  ')


class TestFetchPeerChain(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.pki = Hierarchy()

    def test_connection_error(self):
        with patch('certscope.transport.socket.create_connection', side_effect=socket.timeout("timed out")):
            with self.assertRaises(ConnectError) as ctx:
                fetch_peer_chain('example.com:443', timeout=1)
        self.assertIn('example.com:443', str(ctx.exception))

    def test_returns_presented_chain(self):
        tls = MagicMock()
        tls.get_unverified_chain.return_value = [to_der(self.pki.leaf), to_der(self.pki.intermediate)]
        tls.version.return_value = 'TLSv1.3'
        tls.cipher.return_value = ('TLS_AES_128_GCM_SHA256', 'TLSv1.3', 128)
        context = MagicMock()
        context.wrap_socket.return_value.__enter__.return_value = tls

        with patch('certscope.transport.socket.create_connection'), \
                patch('certscope.transport.ssl.create_default_context', return_value=context):
            certs = fetch_peer_chain('example.com', server_name='www.example.com')

        self.assertEqual([c.common_name for c in certs], ['www.example.com', 'Test Intermediate CA'])
        self.assertEqual(context.wrap_socket.call_args[1]['server_hostname'], 'www.example.com')

    def test_empty_chain(self):
        tls = MagicMock()
        tls.get_unverified_chain.return_value = []
        tls.cipher.return_value = ('x', 'y', 0)
        context = MagicMock()
        context.wrap_socket.return_value.__enter__.return_value = tls

        with patch('certscope.transport.socket.create_connection'), \
                patch('certscope.transport.ssl.create_default_context', return_value=context):
            with self.assertRaises(ConnectError):
                fetch_peer_chain('example.com')


class TestTrust(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_load_bundle(self):
        pki = Hierarchy()
        path = os.path.join(self.temp_dir, 'bundle.pem')
        with open(path, 'wb') as f:
            f.write(to_pem(pki.root, pki.intermediate))

        anchors = load_bundle(path)
        self.assertEqual([a.common_name for a in anchors], ['Test Root CA', 'Test Intermediate CA'])

    def test_default_trust_anchors(self):
        anchors = default_trust_anchors()

        self.assertGreater(len(anchors), 10)
        self.assertTrue(all(a.is_ca or a.self_signed for a in anchors))
        self.assertIs(default_trust_anchors(), anchors)


if __name__ == '__main__':
    unittest.main()
